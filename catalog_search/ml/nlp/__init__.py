"""Query understanding: tokenization, entity extraction and intent detection."""

from .entity_extraction import EntityExtractionResult, EntityExtractor, EntityType, ExtractedEntity
from .intent_detection import Intent, IntentClassifier, IntentLabel, IntentSearchParameters
from .tokenizer import QueryTokenizer

__all__ = [
    "EntityExtractionResult",
    "EntityExtractor",
    "EntityType",
    "ExtractedEntity",
    "Intent",
    "IntentClassifier",
    "IntentLabel",
    "IntentSearchParameters",
    "QueryTokenizer",
]
