"""
Query Tokenizer
Lowercasing word tokenizer used to feed entity extraction and intent detection.
"""

import re
from typing import FrozenSet, List, Optional

from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS

# Stop words that carry intent or price direction and must survive tokenization
KEEP_WORDS: FrozenSet[str] = frozenset(
    {
        "under",
        "over",
        "above",
        "below",
        "less",
        "more",
        "than",
        "between",
        "top",
        "best",
        "new",
        "show",
        "find",
        "vs",
        "versus",
        "high",
        "low",
        "without",
    }
)

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")


class QueryTokenizer:
    """
    Split query text into lowercase word tokens.

    Hyphenated words ("eco-friendly", "high-end") stay whole so that
    dictionary lookups can match them.
    """

    def __init__(
        self,
        min_token_length: int = 2,
        stop_words: Optional[FrozenSet[str]] = None,
    ):
        self.min_token_length = min_token_length
        base = stop_words if stop_words is not None else frozenset(ENGLISH_STOP_WORDS)
        self.stop_words = base - KEEP_WORDS

    def tokenize(self, query: str) -> List[str]:
        """
        Tokenize a query.

        Args:
            query: Raw query text

        Returns:
            Ordered list of tokens
        """
        if not query:
            return []

        text = query.lower().replace("'", "")
        tokens = []
        for token in _TOKEN_PATTERN.findall(text):
            if token in self.stop_words:
                continue
            if token.isdigit():
                continue
            if len(token) < self.min_token_length:
                continue
            tokens.append(token)
        return tokens
