"""
Facet Mapping
Turn raw index aggregations into grouped, display-ready facets.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

GROUP_SEPARATOR = ":"
UNGROUPED_FACET = "values"


@dataclass
class FacetValue:
    """One countable facet value."""

    value: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "count": self.count}


@dataclass
class Facet:
    """Named group of facet values."""

    name: str
    display_name: str
    values: List[FacetValue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "values": [v.to_dict() for v in self.values],
        }


@dataclass
class PriceStats:
    """Price statistics over the matching products."""

    avg: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {"avg": self.avg, "min": self.min, "max": self.max}


def slugify(text: str) -> str:
    """Facet name for a group label ("Care Instructions" -> "care_instructions")."""
    return re.sub(r"\s+", "_", text.strip().lower())


def _format_price(value: float) -> str:
    return f"${value:g}"


class FacetMapper:
    """
    Map index aggregations to facets.

    Value buckets shaped "Group: Value" collapse into a facet named
    slugify(Group); other value buckets go to the "values" facet.
    """

    def map(self, aggregations: Optional[Mapping[str, Any]]) -> List[Facet]:
        """
        Build facets from an aggregations response.

        Args:
            aggregations: The index response's aggregations object

        Returns:
            Facets in a stable order: category, brand, value groups, price
        """
        if not aggregations:
            return []

        facets: List[Facet] = []

        category = self._terms_facet("category", "Category", aggregations.get("categories"))
        if category.values:
            facets.append(category)

        brand = self._terms_facet("brand", "Brand", aggregations.get("brands"))
        if brand.values:
            facets.append(brand)

        facets.extend(self._value_facets(aggregations.get("values")))

        price = self._price_facet(aggregations.get("price_ranges"))
        if price.values:
            facets.append(price)

        return facets

    @staticmethod
    def _buckets(aggregation: Optional[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
        if not aggregation:
            return []
        return list(aggregation.get("buckets") or [])

    def _terms_facet(
        self, name: str, display_name: str, aggregation: Optional[Mapping[str, Any]]
    ) -> Facet:
        facet = Facet(name=name, display_name=display_name)
        for bucket in self._buckets(aggregation):
            key = bucket.get("key")
            if key is None or key == "":
                continue
            facet.values.append(FacetValue(value=str(key), count=int(bucket.get("doc_count", 0))))
        return facet

    def _value_facets(self, aggregation: Optional[Mapping[str, Any]]) -> List[Facet]:
        groups: Dict[str, Facet] = {}
        for bucket in self._buckets(aggregation):
            key = str(bucket.get("key", "")).strip()
            if not key:
                continue
            count = int(bucket.get("doc_count", 0))

            prefix, sep, suffix = key.partition(GROUP_SEPARATOR)
            group, value = prefix.strip(), suffix.strip()
            if sep and group and value:
                name, display_name = slugify(group), group
            else:
                name, display_name, value = UNGROUPED_FACET, "Values", key

            facet = groups.get(name)
            if facet is None:
                facet = groups[name] = Facet(name=name, display_name=display_name)
            facet.values.append(FacetValue(value=value, count=count))

        return list(groups.values())

    def _price_facet(self, aggregation: Optional[Mapping[str, Any]]) -> Facet:
        facet = Facet(name="price", display_name="Price")
        for bucket in self._buckets(aggregation):
            low = bucket.get("from")
            high = bucket.get("to")
            if high is None and low is None:
                continue
            if high is None:
                label = f"{_format_price(low)}+"
            else:
                label = f"{_format_price(low or 0)}-{_format_price(high)}"
            facet.values.append(FacetValue(value=label, count=int(bucket.get("doc_count", 0))))
        return facet

    def price_stats(self, aggregations: Optional[Mapping[str, Any]]) -> Optional[PriceStats]:
        """
        Extract avg/min/max price.

        Returns:
            PriceStats, or None if price stats were not requested
        """
        if not aggregations or "avg_price" not in aggregations:
            return None

        def stat(name: str) -> Optional[float]:
            value = (aggregations.get(name) or {}).get("value")
            return float(value) if value is not None else None

        return PriceStats(avg=stat("avg_price"), min=stat("min_price"), max=stat("max_price"))
