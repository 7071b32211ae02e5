"""User personalization."""

from .preferences import (
    InMemoryPreferenceStore,
    PreferenceStore,
    PriceRangePreference,
    RecentlyViewedProduct,
    UserContext,
    UserPreferences,
)

__all__ = [
    "InMemoryPreferenceStore",
    "PreferenceStore",
    "PriceRangePreference",
    "RecentlyViewedProduct",
    "UserContext",
    "UserPreferences",
]
