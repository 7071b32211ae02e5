"""Relevance experiments."""

from .ab_testing import (
    ABTest,
    ABTestAllocator,
    ABVariant,
    RelevanceAlgorithm,
    VariantAssignment,
    bucket_for,
    build_analytics_event,
    default_ab_tests,
    string_hash,
)

__all__ = [
    "ABTest",
    "ABTestAllocator",
    "ABVariant",
    "RelevanceAlgorithm",
    "VariantAssignment",
    "bucket_for",
    "build_analytics_event",
    "default_ab_tests",
    "string_hash",
]
