"""Budget override recommendations."""

from governor.overrides.recommender import OverrideGrant, recommend_for, recommend_override

__all__ = ["OverrideGrant", "recommend_for", "recommend_override"]
