"""Subscription tier feature table."""

from dataclasses import dataclass

DEFAULT_TIER = "free"


@dataclass(frozen=True)
class TierFeatures:
    """Limits and capabilities granted by a subscription tier."""

    tier: str
    max_digests: int | None  # None means unlimited
    allowed_frequencies: frozenset[str]
    custom_templates: bool = False
    priority_support: bool = False

    @property
    def unlimited(self) -> bool:
        return self.max_digests is None


TIER_FEATURES: dict[str, TierFeatures] = {
    "free": TierFeatures(
        tier="free",
        max_digests=3,
        allowed_frequencies=frozenset({"daily", "weekly"}),
    ),
    "pro": TierFeatures(
        tier="pro",
        max_digests=10,
        allowed_frequencies=frozenset({"daily", "weekly", "monthly"}),
        custom_templates=True,
    ),
    "enterprise": TierFeatures(
        tier="enterprise",
        max_digests=None,
        allowed_frequencies=frozenset({"daily", "weekly", "monthly", "custom"}),
        custom_templates=True,
        priority_support=True,
    ),
}


def is_valid_tier(tier: str) -> bool:
    return tier in TIER_FEATURES


def get_tier_features(tier: str | None) -> TierFeatures:
    """Look up a tier's features, falling back to the free tier for unknown names."""
    return TIER_FEATURES.get(tier or DEFAULT_TIER, TIER_FEATURES[DEFAULT_TIER])
