"""
Product Filtering
Compile product filters into exact-match and range clauses for the index.
"""

import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional

from .query_dsl import Clause, Range, Term, Terms

logger = logging.getLogger(__name__)


class FilterOperator(Enum):
    """Comparison operators for filters."""

    EQ = "term"
    IN = "terms"
    GTE = "gte"
    LTE = "lte"


# Filter attribute -> index field
FILTER_FIELDS: Dict[str, str] = {
    "categories": "categories.keyword",
    "brands": "brandName.keyword",
    "values": "values.keyword",
    "colors": "attributes.color.keyword",
    "sizes": "attributes.size.keyword",
    "materials": "attributes.material.keyword",
    "merchant_id": "merchantId",
    "in_stock": "inStock",
    "price": "price",
    "rating": "rating",
}


@dataclass
class ProductFilter:
    """
    Single filter condition for products.

    Example:
        ProductFilter("price", FilterOperator.LTE, 100.0)  # price <= 100
        ProductFilter("categories.keyword", FilterOperator.IN, ["dresses"])
    """

    field: str
    operator: FilterOperator
    value: Any

    def to_clause(self) -> Clause:
        """
        Convert filter to an index clause.

        Returns:
            Term, Terms or Range clause
        """
        if self.operator == FilterOperator.IN:
            return Terms(self.field, tuple(self.value))
        elif self.operator == FilterOperator.GTE:
            return Range(self.field, gte=self.value)
        elif self.operator == FilterOperator.LTE:
            return Range(self.field, lte=self.value)
        else:
            return Term(self.field, self.value)


@dataclass
class AppliedFilter:
    """A filter as reported back to the caller."""

    field: str
    value: Any
    source: str = "request"  # request | intent | entity

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "value": self.value, "source": self.source}


@dataclass
class ProductFilters:
    """
    Collection of filters for product search.

    Common filters:
    - Category, brand and value terms
    - Price range
    - Stock availability
    - Merchant
    - Attribute terms (color, size, material)
    """

    categories: Optional[List[str]] = None
    brands: Optional[List[str]] = None
    values: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    sizes: Optional[List[str]] = None
    materials: Optional[List[str]] = None

    # Price filters
    min_price: Optional[float] = None
    max_price: Optional[float] = None

    min_rating: Optional[float] = None

    merchant_id: Optional[str] = None
    in_stock: Optional[bool] = None

    # Custom filters
    custom_filters: List[ProductFilter] = field(default_factory=list)

    def is_empty(self) -> bool:
        """Whether no filter is set."""
        return not self.build_filters()

    def build_filters(self) -> List[ProductFilter]:
        """
        Build list of ProductFilter objects from this config.

        Returns:
            List of ProductFilter objects
        """
        filters = []

        # Term-list filters
        for name in ("categories", "values", "brands", "colors", "sizes", "materials"):
            terms = getattr(self, name)
            if terms:
                filters.append(ProductFilter(FILTER_FIELDS[name], FilterOperator.IN, list(terms)))

        # Price filters
        if self.min_price is not None:
            filters.append(ProductFilter("price", FilterOperator.GTE, self.min_price))
        if self.max_price is not None:
            filters.append(ProductFilter("price", FilterOperator.LTE, self.max_price))

        if self.min_rating is not None:
            filters.append(ProductFilter("rating", FilterOperator.GTE, self.min_rating))

        if self.merchant_id is not None:
            filters.append(ProductFilter("merchantId", FilterOperator.EQ, self.merchant_id))
        if self.in_stock is not None:
            filters.append(ProductFilter("inStock", FilterOperator.EQ, self.in_stock))

        # Add custom filters
        filters.extend(self.custom_filters)

        return filters

    def to_clauses(self) -> List[Clause]:
        """
        Build index filter clauses.

        Price bounds collapse into one range clause.
        """
        clauses: List[Clause] = []
        for f in self.build_filters():
            if f.field == "price" and f.operator in (FilterOperator.GTE, FilterOperator.LTE):
                continue
            clauses.append(f.to_clause())

        if self.min_price is not None or self.max_price is not None:
            clauses.append(Range("price", gte=self.min_price, lte=self.max_price))

        return clauses

    def applied(self, source: str = "request") -> List[AppliedFilter]:
        """
        List the set filters for the response.

        Args:
            source: Where the filters came from

        Returns:
            List of AppliedFilter
        """
        applied = []
        for f in fields(self):
            if f.name == "custom_filters":
                continue
            value = getattr(self, f.name)
            if value is None or value == []:
                continue
            applied.append(AppliedFilter(field=f.name, value=value, source=source))
        for custom in self.custom_filters:
            applied.append(AppliedFilter(field=custom.field, value=custom.value, source=source))
        return applied


def combine_filters(*filter_objects: ProductFilters) -> ProductFilters:
    """
    Combine multiple ProductFilters objects into one.

    Later objects override earlier ones for term lists, merchant and stock;
    price and rating bounds use the most restrictive value.

    Args:
        *filter_objects: Multiple ProductFilters to combine

    Returns:
        Combined ProductFilters object
    """
    combined = ProductFilters()

    for f in filter_objects:
        # Term lists (later wins)
        for name in ("categories", "brands", "values", "colors", "sizes", "materials"):
            terms = getattr(f, name)
            if terms:
                setattr(combined, name, list(terms))

        # Combine price filters (use most restrictive)
        if f.min_price is not None:
            combined.min_price = (
                f.min_price if combined.min_price is None else max(combined.min_price, f.min_price)
            )
        if f.max_price is not None:
            combined.max_price = (
                f.max_price if combined.max_price is None else min(combined.max_price, f.max_price)
            )

        if f.min_rating is not None:
            combined.min_rating = (
                f.min_rating
                if combined.min_rating is None
                else max(combined.min_rating, f.min_rating)
            )

        if f.merchant_id is not None:
            combined.merchant_id = f.merchant_id
        if f.in_stock is not None:
            combined.in_stock = f.in_stock

        combined.custom_filters.extend(f.custom_filters)

    if (
        combined.min_price is not None
        and combined.max_price is not None
        and combined.min_price > combined.max_price
    ):
        logger.warning(
            f"Combined price bounds are empty: min {combined.min_price} > max {combined.max_price}"
        )

    return combined
