"""
Search ML Configuration
Centralized tunables for entity extraction, intent detection, scoring and query building.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


def _check_unit_interval(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be in [0, 1], got {value}")


@dataclass
class NLPConfig:
    """Entity extraction and intent detection configuration."""

    # Entity confidences
    regex_known_confidence: float = 0.9
    regex_unknown_confidence: float = 0.7
    token_confidence: float = 0.8
    bigram_confidence: float = 0.85
    price_range_confidence: float = 0.95
    price_modifier_confidence: float = 0.9
    price_qualifier_confidence: float = 0.7
    top_rated_confidence: float = 0.8

    # Qualitative price bands (min, max)
    cheap_band: Tuple[float, float] = (0, 50)
    expensive_band: Tuple[float, float] = (100, 9999)
    open_price_max: float = 9999

    # Intent detection
    pattern_confidence: float = 0.9
    fallback_intent: str = "product_search"
    fallback_confidence: float = 0.5

    # Tokenizer
    min_token_length: int = 2

    # Dictionary refresh from index aggregations
    dictionary_refresh_size: int = 1000

    def __post_init__(self):
        for name in (
            "regex_known_confidence",
            "regex_unknown_confidence",
            "token_confidence",
            "bigram_confidence",
            "price_range_confidence",
            "price_modifier_confidence",
            "price_qualifier_confidence",
            "top_rated_confidence",
            "pattern_confidence",
            "fallback_confidence",
        ):
            _check_unit_interval(name, getattr(self, name))


@dataclass
class ScoringConfig:
    """Dynamic boost configuration for the scoring profile engine."""

    # Preference boosts
    category_preference_multiplier: float = 1.5
    brand_preference_multiplier: float = 1.3
    value_preference_multiplier: float = 1.2
    recently_viewed_weight: float = 2.0

    # Intent boosts
    intent_exists_weight: float = 3.0

    # Entity boosts (confidence x multiplier)
    entity_min_confidence: float = 0.5
    entity_multipliers: Dict[str, float] = field(
        default_factory=lambda: {
            "category": 2.0,
            "brand": 2.0,
            "value": 1.5,
            "color": 1.5,
            "material": 1.3,
        }
    )

    def __post_init__(self):
        _check_unit_interval("entity_min_confidence", self.entity_min_confidence)


@dataclass
class QueryConfig:
    """Index request construction configuration."""

    # Full-text fields with boosts
    text_fields: Dict[str, float] = field(
        default_factory=lambda: {
            "title": 3.0,
            "description": 1.5,
            "categories": 2.0,
            "tags": 1.8,
            "brandName": 2.5,
            "values": 1.2,
        }
    )
    fuzziness: str = "AUTO"
    prefix_length: int = 1
    tie_breaker: float = 0.3

    # Always-on functions
    in_stock_weight: float = 1.2
    on_sale_weight: float = 1.1
    recency_scale: str = "30d"
    recency_offset: str = "5d"
    recency_decay: float = 0.5
    recency_weight: float = 1.5

    # Aggregations
    category_facet_size: int = 20
    brand_facet_size: int = 20
    value_facet_size: int = 50
    price_ranges: List[Tuple[Optional[float], Optional[float]]] = field(
        default_factory=lambda: [(None, 25), (25, 50), (50, 100), (100, 200), (200, None)]
    )

    # Fields returned in hits
    source_fields: List[str] = field(
        default_factory=lambda: [
            "id",
            "title",
            "description",
            "price",
            "compareAtPrice",
            "currency",
            "imageUrl",
            "brandName",
            "brandId",
            "merchantId",
            "categories",
            "values",
            "rating",
            "reviewCount",
            "inStock",
            "isOnSale",
            "createdAt",
        ]
    )

    def __post_init__(self):
        _check_unit_interval("recency_decay", self.recency_decay)
        _check_unit_interval("tie_breaker", self.tie_breaker)


@dataclass
class SearchConfig:
    """Top-level search configuration combining all sub-configs."""

    nlp: NLPConfig = field(default_factory=NLPConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    query: QueryConfig = field(default_factory=QueryConfig)

    @classmethod
    def from_env(cls) -> "SearchConfig":
        """Load configuration from environment variables."""
        config = cls()

        # Override with environment variables if present
        if fuzziness := os.getenv("SEARCH_FUZZINESS"):
            config.query.fuzziness = fuzziness

        if min_conf := os.getenv("SEARCH_ENTITY_MIN_CONFIDENCE"):
            config.scoring.entity_min_confidence = float(min_conf)

        if recency_scale := os.getenv("SEARCH_RECENCY_SCALE"):
            config.query.recency_scale = recency_scale

        return config

    def validate(self) -> None:
        """Validate configuration consistency."""
        low, high = self.nlp.cheap_band
        assert low <= high, "Cheap price band must be ordered"
        low, high = self.nlp.expensive_band
        assert low <= high, "Expensive price band must be ordered"
        _check_unit_interval("entity_min_confidence", self.scoring.entity_min_confidence)


# Global configuration instance
_global_config: Optional[SearchConfig] = None


def get_search_config() -> SearchConfig:
    """Get global search configuration (singleton pattern)."""
    global _global_config
    if _global_config is None:
        _global_config = SearchConfig.from_env()
        _global_config.validate()
    return _global_config


def reset_config() -> None:
    """Reset global configuration (useful for testing)."""
    global _global_config
    _global_config = None
