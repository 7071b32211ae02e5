"""
User Preferences
Preference model read from the external preference store.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class PriceRangePreference(BaseModel):
    """Weighted price bucket the user tends to buy in."""

    model_config = ConfigDict(frozen=True)

    min: float = Field(..., ge=0)
    max: float = Field(..., ge=0)
    weight: float = Field(..., ge=0)


class RecentlyViewedProduct(BaseModel):
    """Product the user viewed recently."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    timestamp: Optional[datetime] = None


class UserPreferences(BaseModel):
    """
    Learned user preferences.

    Weight maps are keyed by category, brand or value name.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    categories: Dict[str, float] = Field(default_factory=dict)
    brands: Dict[str, float] = Field(default_factory=dict)
    values: Dict[str, float] = Field(default_factory=dict)
    price_ranges: List[PriceRangePreference] = Field(default_factory=list)
    recent_searches: List[str] = Field(default_factory=list)
    recently_viewed_products: List[RecentlyViewedProduct] = Field(default_factory=list)
    purchase_history: List[str] = Field(default_factory=list)
    last_updated: Optional[datetime] = None

    @property
    def recently_viewed_ids(self) -> List[str]:
        """Recently viewed product ids, in stored order."""
        return [p.product_id for p in self.recently_viewed_products]


@runtime_checkable
class PreferenceStore(Protocol):
    """Read-only source of user preferences."""

    def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        ...


class InMemoryPreferenceStore:
    """Dict-backed preference store for local runs and tests."""

    def __init__(self, preferences: Optional[Dict[str, UserPreferences]] = None):
        self._preferences = dict(preferences or {})

    def put(self, preferences: UserPreferences) -> None:
        self._preferences[preferences.user_id] = preferences

    def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        return self._preferences.get(user_id)


@dataclass(frozen=True)
class UserContext:
    """
    Caller identity for personalized scoring.

    A session id marks an active session whose preferences must be read fresh.
    """

    user_id: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None
