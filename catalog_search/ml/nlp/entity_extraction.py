"""
Entity Extraction
Regex and dictionary hybrid recognizer for product search queries.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple

from ..config import NLPConfig, get_search_config
from ..errors import EntityExtractionError

logger = logging.getLogger(__name__)


class EntityType(Enum):
    """Entity types recognized in query text."""

    CATEGORY = "category"
    BRAND = "brand"
    VALUE = "value"
    SIZE = "size"
    COLOR = "color"
    MATERIAL = "material"
    PRICE = "price"
    RATING = "rating"
    DATE = "date"


@dataclass(frozen=True)
class ExtractedEntity:
    """
    Typed, confidence-scored entity found in a query.

    Example:
        ExtractedEntity(EntityType.PRICE, "0-50", 0.9)
    """

    type: EntityType
    value: str
    confidence: float

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Entity confidence must be in [0, 1], got {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"type": self.type.value, "value": self.value, "confidence": self.confidence}


@dataclass
class EntityExtractionResult:
    """Entities plus the (possibly rewritten) query text."""

    entities: List[ExtractedEntity] = field(default_factory=list)
    enhanced_query: str = ""

    def of_type(self, entity_type: EntityType) -> List[ExtractedEntity]:
        """Entities of a single type, in extraction order."""
        return [e for e in self.entities if e.type == entity_type]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "entities": [e.to_dict() for e in self.entities],
            "enhanced_query": self.enhanced_query,
        }


@dataclass(frozen=True)
class EntityPattern:
    """
    Compiled regex plus the group that holds the entity value.

    group=0 takes the whole match (keyword patterns), group=1 a captured phrase.
    """

    regex: re.Pattern
    group: int = 1


def _p(pattern: str, group: int = 1) -> EntityPattern:
    return EntityPattern(re.compile(pattern, re.IGNORECASE), group)


# Seed dictionaries (lowercase). Categories and brands can be extended from the index.
SEED_DICTIONARIES: Dict[EntityType, FrozenSet[str]] = {
    EntityType.CATEGORY: frozenset(
        {
            "clothing", "dresses", "tops", "bottoms", "pants", "jeans", "skirts",
            "shorts", "outerwear", "jackets", "coats", "sweaters", "activewear",
            "swimwear", "lingerie", "sleepwear", "accessories", "shoes", "bags",
            "jewelry", "watches", "sunglasses", "hats", "scarves", "gloves", "belts",
            "socks", "home", "bedding", "bath", "kitchen", "furniture", "decor",
            "beauty", "skincare", "makeup", "haircare", "fragrance", "wellness",
        }
    ),
    EntityType.BRAND: frozenset(
        {
            "avnu", "eco-collective", "sustainable threads", "green earth",
            "ethical choice", "conscious couture", "fair fashion", "earth friendly",
            "pure planet", "organic basics", "recycled revolution", "upcycled unique",
            "local luxe", "small batch beauty", "artisan alliance",
        }
    ),
    EntityType.VALUE: frozenset(
        {
            "sustainable", "ethical", "eco-friendly", "organic", "vegan", "fair trade",
            "handmade", "recycled", "upcycled", "local", "small batch", "carbon neutral",
            "zero waste", "plastic free", "biodegradable", "compostable", "renewable",
            "cruelty-free", "non-toxic", "chemical-free",
        }
    ),
    EntityType.SIZE: frozenset(
        {
            "small", "medium", "large", "xs", "xl", "xxl", "2xl", "3xl", "4xl", "5xl",
            "6xl", "7xl", "8xl", "9xl", "10xl", "one size", "petite", "plus size",
        }
    ),
    EntityType.COLOR: frozenset(
        {
            "black", "white", "red", "blue", "green", "yellow", "orange", "purple",
            "pink", "brown", "gray", "grey", "beige", "navy", "teal", "gold", "silver",
            "multicolor", "multi-color", "multicolour", "multi-colour",
        }
    ),
    EntityType.MATERIAL: frozenset(
        {
            "cotton", "organic cotton", "polyester", "recycled polyester", "wool",
            "silk", "linen", "leather", "vegan leather", "denim", "velvet", "satin",
            "nylon", "cashmere", "fleece", "suede", "canvas", "corduroy", "bamboo",
            "hemp", "tencel", "modal", "rayon", "viscose",
        }
    ),
}

# Dictionaries refreshed from index term aggregations: type -> keyword field
REFRESHABLE_DICTIONARIES: Dict[EntityType, str] = {
    EntityType.CATEGORY: "categories.keyword",
    EntityType.BRAND: "brandName.keyword",
}

_PHRASE = r"([a-z][a-z&-]*(?:\s+[a-z][a-z&-]*){0,3})"

# Ordered pattern tables for the text-valued entity types
ENTITY_PATTERNS: Dict[EntityType, Tuple[EntityPattern, ...]] = {
    EntityType.CATEGORY: (
        _p(r"\b(?:in|for|browse|shop|category:?)\s+" + _PHRASE),
        _p(r"\b([a-z][a-z&-]*(?:\s+[a-z][a-z&-]*)?)\s+(?:category|section|department)\b"),
    ),
    EntityType.BRAND: (
        _p(r"\b(?:by|from|brand:?)\s+" + _PHRASE),
        _p(r"\b([a-z][a-z&-]*(?:\s+[a-z][a-z&-]*)?)\s+brand\b"),
    ),
    EntityType.VALUE: (
        _p(
            r"\b(?:sustainable|ethical|eco-friendly|organic|vegan|fair\s+trade|handmade"
            r"|recycled|upcycled|local|small\s+batch|carbon\s+neutral|zero\s+waste"
            r"|plastic\s+free|biodegradable|compostable|cruelty-free|non-toxic)\b",
            group=0,
        ),
    ),
    EntityType.SIZE: (
        _p(r"\bsize:?\s+([a-z0-9]+(?:\s+[a-z0-9]+)?)"),
        _p(
            r"\b(?:small(?!\s+batch)|medium|large|xs|xl|xxl|(?:[2-9]|10)xl|one\s+size"
            r"|plus\s+size|petite)\b",
            group=0,
        ),
    ),
    EntityType.COLOR: (
        _p(r"\b(?:color|colour):?\s+" + _PHRASE),
        _p(
            r"\b(?:black|white|red|blue|green|yellow|orange|purple|pink|brown|gr[ae]y"
            r"|beige|navy|teal|gold|silver|multi-?colou?r)\b",
            group=0,
        ),
    ),
    EntityType.MATERIAL: (
        _p(r"\bmaterial:?\s+" + _PHRASE),
        _p(r"\bmade\s+(?:of|from|with)\s+" + _PHRASE),
        _p(
            r"\b(?:(?:organic\s+)?cotton|(?:recycled\s+)?polyester|wool|silk|linen"
            r"|(?:vegan\s+)?leather|denim|velvet|satin|nylon|cashmere|fleece|suede"
            r"|canvas|corduroy|bamboo|hemp|tencel)\b",
            group=0,
        ),
    ),
}

# Words that end a captured phrase ("shop dresses under $50" -> "dresses")
PHRASE_BOUNDARIES: FrozenSet[str] = frozenset(
    {
        "a", "an", "and", "the", "or", "with", "without", "in", "for", "from", "by",
        "under", "over", "above", "below", "less", "more", "than", "between", "size",
        "color", "colour", "material", "made", "brand", "category", "section",
        "department", "that", "which", "near", "on", "at", "to", "sorted", "sort",
        "cheap", "affordable", "budget", "inexpensive", "expensive", "luxury",
        "high-end", "premium", "rated", "top", "best", "new", "newest", "latest",
        "recent", "this", "since",
    }
)

LEADING_FILLERS: FrozenSet[str] = frozenset(
    {"browse", "shop", "show", "find", "me", "all", "some", "my", "our", "the", "a", "an"}
)

_NUMBER = r"(\d+(?:\.\d+)?)"

PRICE_RANGE_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"\$" + _NUMBER + r"\s*(?:to|-)\s*\$?" + _NUMBER, re.IGNORECASE),
    re.compile(r"\bbetween\s+\$?" + _NUMBER + r"\s+and\s+\$?" + _NUMBER, re.IGNORECASE),
)

PRICE_MODIFIER_PATTERN = re.compile(
    r"\b(under|less\s+than|below|cheaper\s+than|above|over|more\s+than)\s+\$" + _NUMBER,
    re.IGNORECASE,
)

# Modifier words that bound the price from above; all others bound it from below
MAX_BOUND_MODIFIERS: FrozenSet[str] = frozenset({"under", "less than", "below", "cheaper than"})

PRICE_QUALIFIER_PATTERN = re.compile(
    r"\b(cheap|affordable|budget|inexpensive|expensive|luxury|high-end|premium)\b",
    re.IGNORECASE,
)

CHEAP_QUALIFIERS: FrozenSet[str] = frozenset({"cheap", "affordable", "budget", "inexpensive"})

RATING_VALUE_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(_NUMBER + r"\s*(?:-\s*)?stars?\b", re.IGNORECASE),
    re.compile(r"\b(?:rating|rated):?\s+" + _NUMBER + r"(?!\s*(?:-\s*)?stars?\b)", re.IGNORECASE),
)

RATING_MINIMUM_PATTERN = re.compile(
    r"\b(?:above|over|more\s+than|at\s+least)\s+" + _NUMBER + r"\s*stars?\b", re.IGNORECASE
)

TOP_RATED_PATTERN = re.compile(r"\b(?:top|best|highest)[\s-]+rated\b", re.IGNORECASE)

RECENCY_PATTERN = re.compile(r"\b(?:new|newest|latest|recent)\b", re.IGNORECASE)

# Ordered: the first period that matches wins
DATE_PERIOD_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"\bthis\s+week\b", re.IGNORECASE), "this_week"),
    (re.compile(r"\bthis\s+month\b", re.IGNORECASE), "this_month"),
    (re.compile(r"\bthis\s+year\b", re.IGNORECASE), "this_year"),
)

YEAR_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"\b(?:from|since)\s+(\d{4})\b", re.IGNORECASE),
    re.compile(
        r"\b(?:released|added|published|posted|uploaded|created)\s+(?:in|on)\s+(\d{4})\b",
        re.IGNORECASE,
    ),
)

MIN_YEAR = 2000
MAX_RATING = 5.0


def format_number(value: float) -> str:
    """Render a number without a trailing '.0' (50.0 -> '50', 12.5 -> '12.5')."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def parse_price_range(value: str) -> Tuple[Optional[float], Optional[float]]:
    """
    Parse a price entity value ("0-50", "100-9999") into bounds.

    Returns:
        Tuple of (min_price, max_price); either may be None if unparseable
    """
    try:
        low, high = value.split("-", 1)
        return float(low), float(high)
    except ValueError:
        return None, None


def _clean_phrase(raw: str) -> Optional[str]:
    """Drop leading filler words, then cut a captured phrase at the first boundary word."""
    words = []
    for word in raw.lower().split():
        if not words and word in LEADING_FILLERS:
            continue
        if word in PHRASE_BOUNDARIES:
            break
        words.append(word)
    phrase = " ".join(words).strip(" &-")
    return phrase or None


class EntityExtractor:
    """
    Recognize typed entities in query text.

    For each text-valued type: regex patterns over the raw query, then
    single-token dictionary lookups, then adjacent-bigram lookups. Price,
    rating and date entities come from their own rule tables.

    Dictionaries are read through a single reference that
    refresh_dictionaries() swaps atomically, so extraction can run
    concurrently with a refresh.
    """

    def __init__(
        self,
        config: Optional[NLPConfig] = None,
        dictionaries: Optional[Mapping[EntityType, FrozenSet[str]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize extractor.

        Args:
            config: NLP configuration (defaults to global config)
            dictionaries: Seed dictionaries (defaults to SEED_DICTIONARIES)
            clock: Returns the current time, used to bound explicit years
        """
        self.config = config or get_search_config().nlp
        seeds = dictionaries if dictionaries is not None else SEED_DICTIONARIES
        self._seeds: Dict[EntityType, FrozenSet[str]] = {
            t: frozenset(v.lower() for v in values) for t, values in seeds.items()
        }
        self._dictionaries: Dict[EntityType, FrozenSet[str]] = dict(self._seeds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def dictionary(self, entity_type: EntityType) -> FrozenSet[str]:
        """Current dictionary for an entity type."""
        return self._dictionaries.get(entity_type, frozenset())

    def refresh_dictionaries(self, index_client, index: str) -> bool:
        """
        Extend category and brand dictionaries from index term aggregations.

        Args:
            index_client: Object with search(index, body) -> response dict
            index: Index name

        Returns:
            True if every dictionary refreshed, False if the seeds were kept
        """
        refreshed = dict(self._dictionaries)
        try:
            for entity_type, field_name in REFRESHABLE_DICTIONARIES.items():
                agg_name = f"{entity_type.value}_terms"
                body = {
                    "size": 0,
                    "aggs": {
                        agg_name: {
                            "terms": {
                                "field": field_name,
                                "size": self.config.dictionary_refresh_size,
                            }
                        }
                    },
                }
                response = index_client.search(index=index, body=body)
                buckets = (response.get("aggregations") or {}).get(agg_name, {}).get("buckets", [])
                keys = {str(b["key"]).lower() for b in buckets if b.get("key")}
                refreshed[entity_type] = self._seeds.get(entity_type, frozenset()) | keys
        except Exception as e:
            logger.error(f"Failed to load entity dictionaries from index '{index}': {e}")
            return False

        self._dictionaries = refreshed
        logger.info(
            f"Loaded {len(refreshed.get(EntityType.CATEGORY, ()))} categories and "
            f"{len(refreshed.get(EntityType.BRAND, ()))} brands from index '{index}'"
        )
        return True

    def extract(self, query: str, tokens: List[str]) -> List[ExtractedEntity]:
        """
        Extract entities from a query.

        Args:
            query: Raw query text
            tokens: Lowercased query tokens

        Returns:
            Entities in type order; empty on internal failure
        """
        return self.extract_entities(query, tokens).entities

    def extract_entities(self, query: str, tokens: List[str]) -> EntityExtractionResult:
        """
        Extract entities and build the enhanced query.

        Never raises: internal failures are logged and produce an empty
        entity list with the original query.
        """
        if not query:
            return EntityExtractionResult(entities=[], enhanced_query=query or "")

        try:
            dictionaries = self._dictionaries
            entities: List[ExtractedEntity] = []
            seen = set()

            def add(entity_type: EntityType, value: str, confidence: float) -> None:
                key = (entity_type, value)
                if key in seen:
                    return
                seen.add(key)
                entities.append(ExtractedEntity(entity_type, value, confidence))

            for entity_type, patterns in ENTITY_PATTERNS.items():
                for value, confidence in self._extract_text_type(
                    entity_type, patterns, query, tokens, dictionaries
                ):
                    add(entity_type, value, confidence)

            for value, confidence in self._extract_prices(query):
                add(EntityType.PRICE, value, confidence)
            for value, confidence in self._extract_ratings(query):
                add(EntityType.RATING, value, confidence)
            for value, confidence in self._extract_dates(query):
                add(EntityType.DATE, value, confidence)

            return EntityExtractionResult(entities=entities, enhanced_query=query)

        except Exception as e:
            error = EntityExtractionError(
                f"Failed to extract entities: {e}", details={"query": query}
            )
            logger.error(error.message)
            return EntityExtractionResult(entities=[], enhanced_query=query)

    def _extract_text_type(
        self,
        entity_type: EntityType,
        patterns: Tuple[EntityPattern, ...],
        query: str,
        tokens: List[str],
        dictionaries: Mapping[EntityType, FrozenSet[str]],
    ) -> List[Tuple[str, float]]:
        known = dictionaries.get(entity_type, frozenset())
        found: List[Tuple[str, float]] = []
        values = set()

        # Regex patterns over the raw query
        for pattern in patterns:
            for match in pattern.regex.finditer(query):
                raw = match.group(pattern.group)
                if not raw:
                    continue
                if pattern.group == 0:
                    value = " ".join(raw.lower().split())
                else:
                    value = _clean_phrase(raw)
                if not value or value in values:
                    continue
                if value not in known and self._claimed_elsewhere(entity_type, value, dictionaries):
                    continue
                confidence = (
                    self.config.regex_known_confidence
                    if value in known or pattern.group == 0
                    else self.config.regex_unknown_confidence
                )
                values.add(value)
                found.append((value, confidence))

        # Single-token dictionary lookups
        for token in tokens:
            value = token.lower()
            if value in known and value not in values:
                values.add(value)
                found.append((value, self.config.token_confidence))

        # Adjacent bigram lookups
        for first, second in zip(tokens, tokens[1:]):
            value = f"{first} {second}".lower()
            if value in known and value not in values:
                values.add(value)
                found.append((value, self.config.bigram_confidence))

        return found

    @staticmethod
    def _claimed_elsewhere(
        entity_type: EntityType, value: str, dictionaries: Mapping[EntityType, FrozenSet[str]]
    ) -> bool:
        """Whether an unknown capture is a known value of another type ("in red")."""
        return any(
            value in known for other, known in dictionaries.items() if other != entity_type
        )

    def _extract_prices(self, query: str) -> List[Tuple[str, float]]:
        prices: List[Tuple[str, float]] = []

        # Explicit ranges: "$50 to $100", "between $20 and $40"
        for pattern in PRICE_RANGE_PATTERNS:
            for match in pattern.finditer(query):
                low, high = float(match.group(1)), float(match.group(2))
                if low > high:
                    low, high = high, low
                prices.append(
                    (f"{format_number(low)}-{format_number(high)}", self.config.price_range_confidence)
                )

        # Directional modifiers: "under $50", "over $100"
        for match in PRICE_MODIFIER_PATTERN.finditer(query):
            modifier = " ".join(match.group(1).lower().split())
            price = format_number(float(match.group(2)))
            if modifier in MAX_BOUND_MODIFIERS:
                value = f"0-{price}"
            else:
                value = f"{price}-{format_number(self.config.open_price_max)}"
            prices.append((value, self.config.price_modifier_confidence))

        # Qualitative bands: "cheap", "premium"
        for match in PRICE_QUALIFIER_PATTERN.finditer(query):
            qualifier = match.group(1).lower()
            low, high = (
                self.config.cheap_band
                if qualifier in CHEAP_QUALIFIERS
                else self.config.expensive_band
            )
            prices.append(
                (f"{format_number(low)}-{format_number(high)}", self.config.price_qualifier_confidence)
            )

        return prices

    def _extract_ratings(self, query: str) -> List[Tuple[str, float]]:
        ratings: List[Tuple[str, float]] = []

        for pattern in RATING_VALUE_PATTERNS:
            for match in pattern.finditer(query):
                rating = min(max(float(match.group(1)), 0.0), MAX_RATING)
                ratings.append((format_number(rating), self.config.regex_known_confidence))

        for match in RATING_MINIMUM_PATTERN.finditer(query):
            rating = min(max(float(match.group(1)), 0.0), MAX_RATING)
            ratings.append((f"{format_number(rating)}+", 0.85))

        if TOP_RATED_PATTERN.search(query):
            ratings.append(("4+", self.config.top_rated_confidence))

        return ratings

    def _extract_dates(self, query: str) -> List[Tuple[str, float]]:
        dates: List[Tuple[str, float]] = []

        if RECENCY_PATTERN.search(query):
            dates.append(("recent", 0.8))

        for pattern, value in DATE_PERIOD_PATTERNS:
            if pattern.search(query):
                dates.append((value, 0.9))
                break

        current_year = self._clock().year
        for pattern in YEAR_PATTERNS:
            match = pattern.search(query)
            if match:
                year = int(match.group(1))
                if MIN_YEAR <= year <= current_year:
                    dates.append((f"since_{year}", 0.9))
                break

        return dates
