"""Tenant configuration registry.

Built once at import and never mutated by requests.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING

from ngoportal.models.domain import HeroSlide, ProjectSummary, TenantConfig
from ngoportal.portal.slides import MAX_SLIDES, sanitize_home_slides
from ngoportal.types import Audience, PortalPath

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_TENANT = "orchestra"


def _build(config: TenantConfig) -> TenantConfig:
    """Normalise slide lists and cap them at MAX_SLIDES per surface."""
    return config.model_copy(
        update={
            "home_slides": tuple(sanitize_home_slides(list(config.home_slides))[:MAX_SLIDES]),
            "recording_slides": tuple(
                sanitize_home_slides(list(config.recording_slides))[:MAX_SLIDES]
            ),
        }
    )


ORCHESTRA = _build(
    TenantConfig(
        id="orchestra",
        display_name="Orchestra Portal",
        short_name="Orchestra",
        description="Rehearsals, recordings and projects for the community orchestra.",
        home_slides=(
            HeroSlide(
                id="season",
                title="A season built with our community",
                subtitle="Rehearse, record and perform with working musicians.",
                cta_label="See projects",
                cta_path=PortalPath.PROJECTS,
                image_src="/images/hero/season.jpg",
                image_alt="Orchestra on stage",
            ),
            HeroSlide(
                id="recordings",
                title="Studio recordings",
                subtitle="Listen back to sessions from the last cycle.",
                cta_label="Open recordings",
                cta_path=PortalPath.RECORDINGS,
                image_src="/images/hero/studio.jpg",
                image_alt="Recording studio",
                audience=Audience.VIEWER,
            ),
            HeroSlide(
                id="join",
                title="Join as a participant",
                subtitle="Musicians, staff and volunteers welcome.",
                cta_label="Get involved",
                cta_path=PortalPath.JOIN_PARTICIPANT,
                image_src="/images/hero/join.jpg",
                image_alt="Musicians rehearsing",
            ),
            HeroSlide(
                id="admin",
                title="Program administration",
                subtitle="Manage rosters, invitations and content.",
                cta_label="Open admin",
                cta_path=PortalPath.ADMIN,
                image_src="/images/hero/admin.jpg",
                image_alt="Planning session",
                audience=Audience.PARTICIPANT_ADMIN,
            ),
        ),
        recording_slides=(
            HeroSlide(
                id="chamber",
                title="Chamber sessions",
                subtitle="Small ensembles, close microphones.",
                cta_label="Watch",
                cta_path=PortalPath.RECORDINGS,
                image_src="/images/hero/chamber.jpg",
                image_alt="String quartet",
                video_url="https://media.example.org/chamber/intro.mp4",
            ),
        ),
        projects=(
            ProjectSummary(
                id="orchestra-annual",
                name="Annual Symphony",
                summary="Full orchestra season culminating in the spring concert.",
                status="Active",
                href="/projects/orchestra-annual",
            ),
            ProjectSummary(
                id="chamber-series",
                name="Chamber Series",
                summary="Monthly chamber recordings with rotating ensembles.",
                status="Planning",
                href="/projects/chamber-series",
            ),
        ),
    )
)

TENANTS: Mapping[str, TenantConfig] = MappingProxyType({ORCHESTRA.id: ORCHESTRA})


def get_tenant_config(tenant: str | None = None) -> TenantConfig | None:
    """Look up a tenant; ``None`` selects the default tenant, unknown keys give ``None``."""
    return TENANTS.get(tenant if tenant is not None else DEFAULT_TENANT)
