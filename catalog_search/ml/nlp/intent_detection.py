"""
Intent Detection
Three-tier query intent detector: regex patterns, keyword scoring, Naive Bayes classifier.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from sklearn.feature_extraction.text import CountVectorizer
from sklearn.naive_bayes import MultinomialNB
from sklearn.pipeline import Pipeline

from ..config import NLPConfig, get_search_config
from ..errors import ClassifierTrainingError
from ..retrieval.filters import ProductFilters
from ..retrieval.query_dsl import SortOrder, SortSpec
from .entity_extraction import EntityType, ExtractedEntity, parse_price_range

logger = logging.getLogger(__name__)


class IntentLabel(Enum):
    """Query intents."""

    PRODUCT_SEARCH = "product_search"
    CATEGORY_BROWSE = "category_browse"
    BRAND_SPECIFIC = "brand_specific"
    PRICE_QUERY = "price_query"
    VALUE_DRIVEN = "value_driven"
    COMPARISON = "comparison"
    RECOMMENDATION = "recommendation"
    AVAILABILITY = "availability"
    FILTER = "filter"
    SORT = "sort"


@dataclass(frozen=True)
class SubIntent:
    """Runner-up intent with its confidence."""

    label: IntentLabel
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label.value, "confidence": self.confidence}


@dataclass(frozen=True)
class Intent:
    """Detected intent for one query."""

    label: IntentLabel
    confidence: float
    sub_intents: Tuple[SubIntent, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.label.value,
            "confidence": self.confidence,
            "sub_intents": [s.to_dict() for s in self.sub_intents],
        }


@dataclass
class IntentSearchParameters:
    """Boosts, sort keys and filters an intent contributes to the index request."""

    boost: Dict[str, float] = field(default_factory=dict)
    sort: List[SortSpec] = field(default_factory=list)
    filters: ProductFilters = field(default_factory=ProductFilters)


def _compile(*patterns: str) -> Tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# Checked in order; the first label with a matching pattern wins
INTENT_PATTERNS: Dict[IntentLabel, Tuple[re.Pattern, ...]] = {
    IntentLabel.COMPARISON: _compile(
        r"\b(?:compare|difference\s+between)\s+.+\s+(?:and|or|vs\.?|versus)\s+.+",
        r"\b(?:which\s+is\s+better|what'?s\s+better|better\s+option)\b",
        r"\b[a-z][a-z\s&-]*\s+(?:vs\.?|versus)\s+[a-z][a-z\s&-]*",
    ),
    IntentLabel.SORT: _compile(
        r"\b(?:sort|order|arrange)(?:ed)?\s+(?:by|on)\s+[a-z]",
        r"\b(?:sort|order|arrange)\s+[a-z][a-z\s&-]*\s+(?:by|on)\s+[a-z]",
    ),
    IntentLabel.FILTER: _compile(
        r"\b(?:filter(?:ed)?(?:\s+by)?|show\s+only|limit\s+to|restrict\s+to)\s+\S",
        r"\b(?:by|with)\s+[a-z][a-z\s&-]*\s+(?:only|filter)\b",
    ),
    IntentLabel.AVAILABILITY: _compile(
        r"\b(?:is|are)\s+[a-z][a-z\s&-]*\s+(?:in\s+stock|available)\b",
        r"\b(?:do\s+you\s+have|availability\s+of|back\s+in\s+stock)\b",
    ),
    IntentLabel.PRICE_QUERY: _compile(
        r"\b(?:how\s+much|what\s+is\s+the\s+price\s+of|cost\s+of|price\s+(?:for|of))\s+[a-z]",
        r"\b(?:under|less\s+than|below|above|over|more\s+than)\s+\$\d+",
        r"\$\d+(?:\.\d+)?\s*(?:to|-)\s*\$\d+",
    ),
    IntentLabel.RECOMMENDATION: _compile(
        r"\b(?:recommend|suggest|what\s+should\s+i)\b",
        r"\b(?:what\s+are\s+the\s+best|top|best|popular|trending)\s+[a-z]",
    ),
    IntentLabel.VALUE_DRIVEN: _compile(
        r"\b(?:sustainable|ethical|eco-friendly|organic|vegan|fair\s+trade|handmade"
        r"|recycled|upcycled|local|small\s+batch)\b",
        r"\b(?:environmentally\s+friendly|socially\s+responsible|ethically\s+made"
        r"|eco\s+conscious)\b",
    ),
    IntentLabel.BRAND_SPECIFIC: _compile(
        r"\b(?:by|from)\s+[a-z][a-z&-]+",
        r"\b[a-z][a-z&-]*\s+brand\b",
    ),
    IntentLabel.CATEGORY_BROWSE: _compile(
        r"\b(?:browse|explore|show\s+me|view|see)\s+(?:all\s+|the\s+)?[a-z]",
        r"\b(?:what|which)\s+[a-z][a-z\s&-]*\s+(?:do\s+you\s+have|are\s+available|can\s+i\s+find)\b",
    ),
    IntentLabel.PRODUCT_SEARCH: _compile(
        r"\b(?:find|search\s+for|looking\s+for|need)\s+(?:a\s+|an\s+|some\s+)?[a-z]",
        r"\b(?:where\s+can\s+i\s+find|is\s+there)\s+(?:a\s+|an\s+|some\s+)?[a-z]",
    ),
}

INTENT_KEYWORDS: Dict[IntentLabel, Tuple[str, ...]] = {
    IntentLabel.PRODUCT_SEARCH: ("find", "search", "looking", "need", "want", "show", "get"),
    IntentLabel.CATEGORY_BROWSE: (
        "browse", "explore", "view", "see", "category", "categories", "all",
    ),
    IntentLabel.BRAND_SPECIFIC: ("brand", "by", "from", "made by", "manufacturer"),
    IntentLabel.PRICE_QUERY: (
        "price", "cost", "how much", "affordable", "expensive", "cheap", "budget", "luxury",
    ),
    IntentLabel.VALUE_DRIVEN: (
        "sustainable", "ethical", "eco-friendly", "organic", "vegan", "fair trade",
        "handmade", "recycled", "local",
    ),
    IntentLabel.COMPARISON: (
        "compare", "comparison", "difference", "versus", "vs", "or", "better", "best",
    ),
    IntentLabel.RECOMMENDATION: (
        "recommend", "suggest", "best", "top", "popular", "trending", "rated",
    ),
    IntentLabel.AVAILABILITY: ("available", "in stock", "stock", "inventory", "when"),
    IntentLabel.FILTER: ("filter", "only", "limit", "restrict", "with", "has", "have"),
    IntentLabel.SORT: ("sort", "order", "arrange", "ranking", "highest", "lowest"),
}

# Labeled phrases the classifier is trained on, seven per intent
INTENT_EXAMPLES: Dict[IntentLabel, Tuple[str, ...]] = {
    IntentLabel.PRODUCT_SEARCH: (
        "find a black dress",
        "looking for organic cotton t-shirts",
        "search for eco-friendly water bottles",
        "need a new pair of sustainable jeans",
        "show me vegan leather bags",
        "find recycled plastic sunglasses",
        "i need a fair trade coffee mug",
    ),
    IntentLabel.CATEGORY_BROWSE: (
        "browse sustainable clothing",
        "explore eco-friendly home goods",
        "show me all vegan products",
        "view organic skincare",
        "see all recycled items",
        "what sustainable products do you have",
        "which ethical brands are available",
    ),
    IntentLabel.BRAND_SPECIFIC: (
        "products by eco collective",
        "items from sustainable threads",
        "green earth brand",
        "show me ethical choice products",
        "find conscious couture dresses",
        "fair fashion jeans",
        "earth friendly cleaning products",
    ),
    IntentLabel.PRICE_QUERY: (
        "how much are organic cotton sheets",
        "price of sustainable yoga mats",
        "cost of eco-friendly water bottles",
        "products under $50",
        "items between $20 and $100",
        "affordable ethical clothing",
        "luxury sustainable fashion",
    ),
    IntentLabel.VALUE_DRIVEN: (
        "sustainable kitchen products",
        "ethical jewelry brands",
        "eco-friendly cleaning supplies",
        "organic cotton bedding",
        "vegan leather alternatives",
        "fair trade chocolate",
        "locally made furniture",
    ),
    IntentLabel.COMPARISON: (
        "compare organic cotton vs recycled polyester",
        "difference between vegan leather and real leather",
        "bamboo or recycled plastic toothbrushes",
        "which is better silk or tencel",
        "sustainable vs conventional cotton",
        "compare eco collective and green earth brands",
        "recycled paper or bamboo toilet paper",
    ),
    IntentLabel.RECOMMENDATION: (
        "recommend sustainable gifts under $30",
        "suggest eco-friendly cleaning products",
        "what are the best vegan leather bags",
        "top rated organic skincare",
        "popular sustainable fashion brands",
        "best value eco-friendly products",
        "trending ethical jewelry",
    ),
    IntentLabel.AVAILABILITY: (
        "are organic cotton sheets in stock",
        "do you have bamboo toothbrushes",
        "availability of recycled paper notebooks",
        "is the eco-friendly water bottle available",
        "when will sustainable yoga mats be back in stock",
        "check stock for vegan leather bags",
        "are fair trade coffee beans available",
    ),
    IntentLabel.FILTER: (
        "filter by sustainable materials",
        "show only vegan products",
        "limit to local brands",
        "restrict to items under $50",
        "filter by 4+ star rating",
        "show only organic options",
        "with recycled packaging only",
    ),
    IntentLabel.SORT: (
        "sort by price low to high",
        "order by customer rating",
        "arrange by newest first",
        "sort sustainable clothing by price",
        "order vegan products by popularity",
        "arrange by eco-friendliness score",
        "sort by distance from local",
    ),
}

# Default boosts per intent (logical field names)
INTENT_BOOSTS: Dict[IntentLabel, Dict[str, float]] = {
    IntentLabel.PRODUCT_SEARCH: {"name": 2.0, "description": 1.0, "categories": 1.5},
    IntentLabel.CATEGORY_BROWSE: {"categories": 3.0, "name": 1.0, "description": 0.5},
    IntentLabel.BRAND_SPECIFIC: {"brand": 3.0, "name": 1.0},
    IntentLabel.VALUE_DRIVEN: {"values": 3.0, "description": 2.0, "name": 1.0},
    IntentLabel.RECOMMENDATION: {"rating": 2.0, "reviewCount": 1.5, "name": 1.0},
}

# Entity type -> ProductFilters list attribute used by the filter intent
_ENTITY_FILTER_LISTS: Dict[EntityType, str] = {
    EntityType.CATEGORY: "categories",
    EntityType.BRAND: "brands",
    EntityType.VALUE: "values",
    EntityType.COLOR: "colors",
    EntityType.SIZE: "sizes",
    EntityType.MATERIAL: "materials",
}


class IntentClassifier:
    """
    Detect the intent of a product search query.

    Tiers, first accepted result wins:
    1. Regex pattern table (fixed confidence)
    2. Keyword hit share, accepted above the confidence threshold
    3. Naive Bayes over labeled example phrases, accepted above the threshold
    4. Fallback to product_search

    The classifier is trained once in the constructor. If training fails
    the detector keeps running on tiers 1 and 2.
    """

    def __init__(
        self,
        confidence_threshold: float = 0.6,
        config: Optional[NLPConfig] = None,
        examples: Optional[Dict[IntentLabel, Sequence[str]]] = None,
    ):
        """
        Initialize and train the classifier.

        Args:
            confidence_threshold: Minimum confidence for tiers 2 and 3
            config: NLP configuration (defaults to global config)
            examples: Training phrases per intent (defaults to INTENT_EXAMPLES)
        """
        if not 0.0 <= confidence_threshold <= 1.0:
            raise ValueError(f"confidence_threshold must be in [0, 1], got {confidence_threshold}")

        self.confidence_threshold = confidence_threshold
        self.config = config or get_search_config().nlp
        self._fallback = Intent(IntentLabel(self.config.fallback_intent), self.config.fallback_confidence)
        self._classifier: Optional[Pipeline] = None

        try:
            self._classifier = self._train(examples if examples is not None else INTENT_EXAMPLES)
            logger.info("Intent classifier trained successfully")
        except ClassifierTrainingError as e:
            logger.error(f"Intent classifier degraded to pattern and keyword tiers: {e.message}")

    @property
    def is_degraded(self) -> bool:
        """Whether the trained classifier tier is unavailable."""
        return self._classifier is None

    @staticmethod
    def _train(examples: Dict[IntentLabel, Sequence[str]]) -> Pipeline:
        phrases: List[str] = []
        labels: List[str] = []
        for label, label_examples in examples.items():
            for example in label_examples:
                phrases.append(example.lower())
                labels.append(label.value)

        if len(set(labels)) < 2:
            raise ClassifierTrainingError(
                "Need examples for at least two intents",
                details={"intents": sorted(set(labels))},
            )

        pipeline = Pipeline(
            [
                ("vectorizer", CountVectorizer(ngram_range=(1, 2))),
                ("classifier", MultinomialNB(alpha=0.5)),
            ]
        )
        try:
            pipeline.fit(phrases, labels)
        except ValueError as e:
            raise ClassifierTrainingError(f"Failed to train intent classifier: {e}") from e
        return pipeline

    def detect(self, query: str, tokens: Optional[List[str]] = None) -> Intent:
        """
        Detect the intent of a query.

        Args:
            query: Raw query text
            tokens: Query tokens (unused by the current tiers)

        Returns:
            Intent; the product_search fallback on any internal error
        """
        if not query or not query.strip():
            return self._fallback

        try:
            intent = self._match_patterns(query)
            if intent is None:
                intent = self._score_keywords(query)
            if intent is None:
                intent = self._classify(query)
            return intent or self._fallback

        except Exception as e:
            logger.error(f"Failed to detect intent for '{query}': {e}")
            return self._fallback

    def _match_patterns(self, query: str) -> Optional[Intent]:
        for label, patterns in INTENT_PATTERNS.items():
            for pattern in patterns:
                if pattern.search(query):
                    return Intent(label, self.config.pattern_confidence)
        return None

    def _score_keywords(self, query: str) -> Optional[Intent]:
        # Substring hits, so "cheapest" counts for "cheap"
        text = query.lower()
        scores: Dict[IntentLabel, int] = {}
        for label, keywords in INTENT_KEYWORDS.items():
            hits = sum(1 for k in keywords if k in text)
            if hits:
                scores[label] = hits

        total = sum(scores.values())
        if total == 0:
            return None

        ranked = sorted(
            (SubIntent(label, hits / total) for label, hits in scores.items()),
            key=lambda s: s.confidence,
            reverse=True,
        )
        top = ranked[0]
        if top.confidence < self.confidence_threshold:
            return None
        return Intent(top.label, top.confidence, tuple(ranked[1:]))

    def _classify(self, query: str) -> Optional[Intent]:
        if self._classifier is None:
            return None

        probabilities = self._classifier.predict_proba([query.lower()])[0]
        classes = self._classifier.classes_
        order = np.argsort(probabilities)[::-1]
        ranked = [SubIntent(IntentLabel(classes[i]), float(probabilities[i])) for i in order]
        top = ranked[0]
        if top.confidence < self.confidence_threshold:
            return None
        return Intent(top.label, top.confidence, tuple(ranked[1:]))

    def get_search_parameters(
        self,
        intent: Union[Intent, IntentLabel],
        entities: Sequence[ExtractedEntity],
        query: Optional[str] = None,
    ) -> IntentSearchParameters:
        """
        Map an intent to default boosts, sort keys and filter injections.

        Args:
            intent: Detected intent or bare label
            entities: Entities extracted from the same query
            query: Raw query text (read by the sort intent)

        Returns:
            IntentSearchParameters
        """
        label = intent.label if isinstance(intent, Intent) else intent
        params = IntentSearchParameters(boost=dict(INTENT_BOOSTS.get(label, {})))
        filters = params.filters

        def values_of(entity_type: EntityType) -> List[str]:
            return [e.value for e in entities if e.type == entity_type]

        if label == IntentLabel.CATEGORY_BROWSE:
            filters.categories = values_of(EntityType.CATEGORY) or None

        elif label == IntentLabel.BRAND_SPECIFIC:
            filters.brands = values_of(EntityType.BRAND) or None

        elif label == IntentLabel.PRICE_QUERY:
            params.sort.append(SortSpec("price", SortOrder.ASC))
            prices = values_of(EntityType.PRICE)
            if prices:
                filters.min_price, filters.max_price = parse_price_range(prices[0])

        elif label == IntentLabel.VALUE_DRIVEN:
            filters.values = values_of(EntityType.VALUE) or None

        elif label == IntentLabel.RECOMMENDATION:
            params.sort.append(SortSpec("rating", SortOrder.DESC))

        elif label == IntentLabel.AVAILABILITY:
            filters.in_stock = True

        elif label == IntentLabel.FILTER:
            self._entity_filters(entities, filters)

        elif label == IntentLabel.SORT:
            sort = self._parse_sort(query or "")
            if sort is not None:
                params.sort.append(sort)

        return params

    @staticmethod
    def _entity_filters(entities: Sequence[ExtractedEntity], filters: ProductFilters) -> None:
        for entity in entities:
            attr = _ENTITY_FILTER_LISTS.get(entity.type)
            if attr is not None:
                current = getattr(filters, attr) or []
                if entity.value not in current:
                    setattr(filters, attr, current + [entity.value])
            elif entity.type == EntityType.PRICE:
                low, high = parse_price_range(entity.value)
                if low is not None:
                    filters.min_price, filters.max_price = low, high
            elif entity.type == EntityType.RATING:
                try:
                    filters.min_rating = float(entity.value.rstrip("+"))
                except ValueError:
                    logger.warning(f"Ignoring unparseable rating entity '{entity.value}'")

    @staticmethod
    def _parse_sort(query: str) -> Optional[SortSpec]:
        text = query.lower()
        if "price" in text:
            order = SortOrder.DESC if "high to low" in text else SortOrder.ASC
            return SortSpec("price", order)
        if "rating" in text or "reviews" in text:
            return SortSpec("rating", SortOrder.DESC)
        if "new" in text or "recent" in text:
            return SortSpec("createdAt", SortOrder.DESC)
        if "popular" in text or "trending" in text:
            return SortSpec("popularity", SortOrder.DESC)
        return None
