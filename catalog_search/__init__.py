"""
Catalog Search
Query understanding and relevance ranking for product catalog search.
"""

__version__ = "0.1.0"
