"""Portal context: tenant config plus UI copy, and the navigation menu built from them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ngoportal.exceptions import NotFound
from ngoportal.models.domain import NavItem, TenantConfig
from ngoportal.portal.locale import get_locale_copy
from ngoportal.portal.registry import DEFAULT_TENANT, get_tenant_config
from ngoportal.portal.routes import resolve_portal_path
from ngoportal.types import PortalPath


@dataclass(frozen=True, slots=True)
class PortalContext:
    config: TenantConfig
    locale: dict[str, Any]


def get_portal_context(tenant: str | None = None) -> PortalContext:
    """Resolve a tenant's config and copy; unknown tenants raise NotFound."""
    config = get_tenant_config(tenant if tenant is not None else DEFAULT_TENANT)
    if config is None:
        raise NotFound("Unknown portal", reason="tenant_not_found", tenant=tenant)
    return PortalContext(config=config, locale=dict(get_locale_copy("en")))


_NAV = (
    ("home", PortalPath.HOME),
    ("recordings", PortalPath.RECORDINGS),
    ("projects", PortalPath.PROJECTS),
    ("dashboard", PortalPath.DASHBOARD),
    ("admin", PortalPath.ADMIN),
)


def get_portal_nav(tenant: str, scoped: bool = False) -> list[NavItem]:
    labels = get_locale_copy("en")["nav"]
    return [
        NavItem(label=labels[key], href=resolve_portal_path(path, tenant, scoped))
        for key, path in _NAV
    ]
