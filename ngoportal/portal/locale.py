"""UI copy bundles keyed by language tag."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Literal

Locale = Literal["en"]

_EN: dict[str, Any] = {
    "nav": {
        "home": "Home",
        "recordings": "Recordings",
        "projects": "Projects",
        "dashboard": "Dashboard",
        "admin": "Admin",
    },
    "home": {
        "projectsHeading": "Current projects",
        "emptyProjects": "No projects are open right now.",
    },
    "invite": {
        "confirm": "Confirm participation",
        "decline": "Decline",
        "expired": "This invitation has expired.",
        "alreadyResponded": "You have already responded to this invitation.",
    },
    "joinAdminStaff": {
        "submit": "Submit request",
        "selectArea": "Select at least one area before submitting.",
        "selectRole": "Each selected area needs at least one role.",
    },
}

_BUNDLES = MappingProxyType({"en": MappingProxyType(_EN)})


def get_locale_copy(locale: Locale = "en") -> MappingProxyType[str, Any]:
    # Only English ships today; every tag falls back to it.
    return _BUNDLES.get(locale, _BUNDLES["en"])
