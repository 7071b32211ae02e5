"""
Search ML Package
Query understanding, relevance scoring and experiment allocation.
"""

from .config import SearchConfig, get_search_config, reset_config

__all__ = ["SearchConfig", "get_search_config", "reset_config"]
