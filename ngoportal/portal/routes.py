"""Tenant-prefixed path resolution for portal navigation."""

from __future__ import annotations

from ngoportal.types import PortalPath

SCOPE_ELIGIBLE = frozenset(
    {
        PortalPath.HOME,
        PortalPath.RECORDINGS,
        PortalPath.PROJECTS,
        PortalPath.DASHBOARD,
        PortalPath.ADMIN,
    }
)


def resolve_portal_path(path: str, tenant: str | None, scoped: bool = False) -> str:
    """Prefix eligible paths with ``/{tenant}`` when scoped.

    Paths outside SCOPE_ELIGIBLE, and any path when the tenant key is empty,
    are returned unchanged.
    """
    if not scoped or not tenant or path not in SCOPE_ELIGIBLE:
        return str(path)
    return f"/{tenant}{path}"
