"""Inter-module data contracts (not persisted directly).

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ngoportal.types import AreaId, Audience, PortalPath


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class HeroSlide(WireModel):
    id: str
    title: str = ""
    subtitle: str = ""
    cta_label: str = ""
    cta_path: PortalPath = PortalPath.HOME
    image_src: str = ""
    image_alt: str = ""
    audience: Audience = Audience.ALL
    video_url: str | None = None


class ProjectSummary(WireModel):
    id: str
    name: str
    summary: str
    status: Literal["Planning", "Active", "In Review"]
    href: str


class TenantConfig(WireModel):
    id: str
    display_name: str
    short_name: str
    description: str
    home_slides: tuple[HeroSlide, ...] = ()
    recording_slides: tuple[HeroSlide, ...] = ()
    projects: tuple[ProjectSummary, ...] = ()


class NavItem(WireModel):
    label: str
    href: str


class AreaSelection(WireModel):
    area_id: AreaId
    area_title: str
    role_ids: list[str]
    role_titles: list[str]
    intent: str = ""


class Candidate(WireModel):
    """A possible recruit surfaced from a connected mailbox."""

    name: str
    email: str
    phone: str | None = None
    instrument: str | None = None
    notes: str = ""
    email_id: str = ""
    subject: str = ""
    date: str = ""
    snippet: str = ""
    is_new: bool = True
