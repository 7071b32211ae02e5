"""
Search Models
Pydantic models for the public search operation.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SearchFilters(BaseModel):
    """Caller-supplied product filters."""

    categories: Optional[List[str]] = Field(None, description="Category names")
    brands: Optional[List[str]] = Field(None, description="Brand names")
    values: Optional[List[str]] = Field(None, description="Product values (e.g. vegan)")
    colors: Optional[List[str]] = Field(None, description="Colors")
    sizes: Optional[List[str]] = Field(None, description="Sizes")
    materials: Optional[List[str]] = Field(None, description="Materials")
    min_price: Optional[float] = Field(None, ge=0, description="Minimum price")
    max_price: Optional[float] = Field(None, ge=0, description="Maximum price")
    min_rating: Optional[float] = Field(None, ge=0, le=5, description="Minimum rating")
    merchant_id: Optional[str] = Field(None, description="Merchant ID")
    in_stock: Optional[bool] = Field(None, description="Only in-stock products")

    @model_validator(mode="after")
    def check_price_range(self) -> "SearchFilters":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price must not exceed max_price")
        return self


class PaginationInput(BaseModel):
    """Cursor pagination input."""

    cursor: Optional[str] = Field(None, description="Cursor from a previous page")
    limit: int = Field(default=20, ge=1, le=100, description="Maximum number of results")


class SortInput(BaseModel):
    """Requested sort key."""

    field: str = Field(..., min_length=1, description="Field to sort on")
    order: Literal["asc", "desc"] = Field(default="desc", description="Sort direction")


class SearchRequest(BaseModel):
    """
    Search request model.

    Supports free-text search with filters, cursor pagination and optional
    caller identity for personalization and experiment bucketing.
    """

    query: Optional[str] = Field(None, max_length=500, description="Search query text")
    filters: Optional[SearchFilters] = Field(None, description="Product filters")
    pagination: PaginationInput = Field(default_factory=PaginationInput)
    sort: Optional[SortInput] = Field(None, description="Sort override")
    user_id: Optional[str] = Field(None, description="User ID for personalized results")
    session_id: Optional[str] = Field(None, description="Active session ID")
    scoring_profile: Optional[str] = Field(None, description="Scoring profile override")
    include_facets: bool = Field(default=True, description="Request facet aggregations")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "query": "sustainable dresses under $50",
                "filters": {"in_stock": True},
                "pagination": {"limit": 20},
                "user_id": "user-123",
            }
        }
    )


class ProductResult(BaseModel):
    """Single product result."""

    product_id: str = Field(..., description="Product ID")
    title: str = Field(..., description="Product title")
    description: Optional[str] = Field(None, description="Product description")
    price: Optional[float] = Field(None, description="Product price")
    compare_at_price: Optional[float] = Field(None, description="Original price when on sale")
    currency: str = Field(default="USD", description="Price currency")
    image_url: Optional[str] = Field(None, description="Primary product image URL")
    brand: Optional[str] = Field(None, description="Brand name")
    brand_id: Optional[str] = Field(None, description="Brand ID")
    merchant_id: Optional[str] = Field(None, description="Merchant ID")
    categories: List[str] = Field(default_factory=list, description="Category names")
    values: List[str] = Field(default_factory=list, description="Product values")
    rating: Optional[float] = Field(None, description="Average customer rating")
    review_count: Optional[int] = Field(None, description="Number of reviews")
    in_stock: bool = Field(default=True, description="Stock availability")
    is_on_sale: bool = Field(default=False, description="On sale")
    created_at: Optional[str] = Field(None, description="Creation timestamp")

    score: Optional[float] = Field(None, description="Relevance score")
    rank: int = Field(..., ge=0, description="Result rank (0-indexed)")

    @classmethod
    def from_hit(cls, hit: Dict[str, Any], rank: int) -> "ProductResult":
        """Build from a raw index hit."""
        source = hit.get("_source") or {}
        return cls(
            product_id=str(source.get("id", hit.get("_id", ""))),
            title=source.get("title") or "",
            description=source.get("description"),
            price=source.get("price"),
            compare_at_price=source.get("compareAtPrice"),
            currency=source.get("currency") or "USD",
            image_url=source.get("imageUrl"),
            brand=source.get("brandName"),
            brand_id=_optional_str(source.get("brandId")),
            merchant_id=_optional_str(source.get("merchantId")),
            categories=list(source.get("categories") or []),
            values=list(source.get("values") or []),
            rating=source.get("rating"),
            review_count=source.get("reviewCount"),
            in_stock=bool(source.get("inStock", True)),
            is_on_sale=bool(source.get("isOnSale", False)),
            created_at=_optional_str(source.get("createdAt")),
            score=hit.get("_score"),
            rank=rank,
        )


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class FacetValue(BaseModel):
    value: str
    count: int


class Facet(BaseModel):
    """Facet group."""

    name: str = Field(..., description="Facet key (slug)")
    display_name: str = Field(..., description="Human-readable facet name")
    values: List[FacetValue] = Field(default_factory=list)


class PriceStats(BaseModel):
    avg: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None


class PaginationInfo(BaseModel):
    """Pagination state of the response."""

    total: int = Field(..., ge=0, description="Total matching products")
    next_cursor: Optional[str] = Field(None, description="Cursor for the next page")
    has_more: bool = Field(..., description="Whether another page exists")


class AppliedFilter(BaseModel):
    """Filter that shaped the results."""

    field: str
    value: Any
    source: Literal["request", "intent", "entity"] = "request"


class EntityModel(BaseModel):
    type: str
    value: str
    confidence: float = Field(..., ge=0, le=1)


class QueryAnalysis(BaseModel):
    """How the query was understood."""

    intent: str
    confidence: float = Field(..., ge=0, le=1)
    sub_intents: List[Dict[str, Any]] = Field(default_factory=list)
    entities: List[EntityModel] = Field(default_factory=list)
    scoring_profile: str


class ExperimentInfo(BaseModel):
    test_id: str
    variant_id: str
    algorithm: str


class SearchResponse(BaseModel):
    """
    Search response model.

    Contains ranked results, facets and pagination state.
    """

    query: Optional[str] = Field(None, description="Original query")
    pagination: PaginationInfo
    results: List[ProductResult] = Field(default_factory=list)
    facets: List[Facet] = Field(default_factory=list)
    applied_filters: List[AppliedFilter] = Field(default_factory=list)
    price_stats: Optional[PriceStats] = None
    analysis: Optional[QueryAnalysis] = None
    experiment: Optional[ExperimentInfo] = None
    search_time_ms: float = Field(default=0.0, ge=0, description="Pipeline time in milliseconds")

    @property
    def total(self) -> int:
        return self.pagination.total

    @property
    def next_cursor(self) -> Optional[str]:
        return self.pagination.next_cursor

    @property
    def has_more(self) -> bool:
        return self.pagination.has_more
