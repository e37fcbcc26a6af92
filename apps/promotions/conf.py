"""
Promotions settings with defaults.

Values come from ``settings.PROMOTIONS``; missing keys fall back to DEFAULTS.
"""

from __future__ import annotations

from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    "REDEMPTION_VALIDITY_DAYS": 30,
    "FREE_PERIOD_DAYS": 30,
    "CODE_GENERATION_ATTEMPTS": 10,
    "REWARD_LIST_MAX_LIMIT": 200,
    "EXPIRY_SWEEP_MINUTES": 15,
}


def get_setting(name: str) -> Any:
    """Read a promotions setting, falling back to the packaged default."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown promotions setting: {name}")
    return getattr(settings, "PROMOTIONS", {}).get(name, DEFAULTS[name])
