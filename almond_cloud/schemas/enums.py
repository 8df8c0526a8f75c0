"""Enum types for the application."""

from enum import Enum


class AcceptFormat(str, Enum):
    """
    Response format requested by an API caller.

    Unknown values fall back to ThingTalk, the default wire format.
    """
    THINGTALK = "application/x-thingtalk"
    JSON = "application/json"
    JSON_V1 = "application/json;apiVersion=1"   # legacy declaration dialect

    @classmethod
    def parse(cls, value) -> "AcceptFormat":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.THINGTALK


class FactoryType(str, Enum):
    """Device factory descriptor types."""
    NONE = "none"
    FORM = "form"
    OAUTH2 = "oauth2"
    INTERACTIVE = "interactive"
    DISCOVERY = "discovery"
    MULTIPLE = "multiple"


# Primary device category axis
DEVICE_CATEGORIES = frozenset({"online", "physical", "data", "system"})

# Secondary device category set
DEVICE_SUBCATEGORIES = frozenset({
    "media",
    "social-network",
    "home",
    "communication",
    "health",
    "service",
    "data-management",
})
