"""Hero slide normalisation for the portal home carousel."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ngoportal.models.domain import HeroSlide
from ngoportal.types import Audience, PortalPath
from ngoportal.utils.sanitize import clean_text

MAX_SLIDES = 5

_PATHS = {p.value for p in PortalPath}
_AUDIENCES = {a.value for a in Audience}


def sanitize_home_slide(raw: Mapping[str, Any] | HeroSlide | None, index: int) -> HeroSlide:
    """Normalise one slide; missing strings become ``""`` and a missing id becomes ``slide-N``."""
    if isinstance(raw, HeroSlide):
        raw = raw.to_wire()
    if not isinstance(raw, Mapping):
        raw = {}

    cta_path = raw.get("ctaPath")
    audience = raw.get("audience")
    return HeroSlide(
        id=clean_text(raw.get("id")) or f"slide-{index + 1}",
        title=clean_text(raw.get("title")),
        subtitle=clean_text(raw.get("subtitle")),
        cta_label=clean_text(raw.get("ctaLabel")),
        cta_path=PortalPath(cta_path) if cta_path in _PATHS else PortalPath.HOME,
        image_src=clean_text(raw.get("imageSrc")),
        image_alt=clean_text(raw.get("imageAlt")),
        audience=Audience(audience) if audience in _AUDIENCES else Audience.ALL,
        video_url=clean_text(raw.get("videoUrl")) or None,
    )


def sanitize_home_slides(raw: Any) -> list[HeroSlide]:
    """Normalise a slide list. Non-list input yields an empty list.

    Applying this twice gives the same result as applying it once.
    """
    if not isinstance(raw, list | tuple):
        return []
    return [sanitize_home_slide(item, index) for index, item in enumerate(raw)]
