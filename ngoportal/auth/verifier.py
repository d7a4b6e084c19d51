"""Bearer token verification (shared-secret HS256 or JWKS-backed RS256) and key caching."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
import jwt
import structlog

from ngoportal.exceptions import ServiceUnavailable

if TYPE_CHECKING:
    from ngoportal.config.settings import Settings

logger = structlog.get_logger(__name__)

# JWKS cache TTL in seconds (1 hour)
_JWKS_CACHE_TTL = 3600


@dataclass(frozen=True, slots=True)
class IdentityClaims:
    """Decoded identity plus whatever role claims the issuer attached."""

    sub: str
    email: str
    name: str
    raw: dict[str, Any]

    @property
    def role(self) -> str | None:
        role = self.raw.get("role")
        return role if isinstance(role, str) else None

    def flag(self, name: str) -> bool:
        return self.raw.get(name) is True


@dataclass
class _JWKSCache:
    keys: list[dict[str, Any]] = field(default_factory=list)
    fetched_at: float = 0.0

    @property
    def is_stale(self) -> bool:
        return time.monotonic() - self.fetched_at > _JWKS_CACHE_TTL


class TokenVerifier:
    """Verifies ID tokens issued by the identity provider.

    ``jwt_secret`` selects HS256 verification; ``jwks_url`` selects RS256
    against the provider's published keys. With neither configured the
    verifier is unavailable and every call raises ServiceUnavailable.
    """

    def __init__(
        self,
        *,
        jwt_secret: str | None = None,
        jwks_url: str | None = None,
        issuer: str | None = None,
        audience: str | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._secret = jwt_secret
        self._jwks_url = jwks_url
        self._issuer = issuer
        self._audience = audience
        self._http = http
        self._cache = _JWKSCache()

    @classmethod
    def from_settings(cls, settings: Settings, http: httpx.AsyncClient) -> TokenVerifier:
        return cls(
            jwt_secret=settings.auth_jwt_secret,
            jwks_url=settings.auth_jwks_url,
            issuer=settings.auth_issuer,
            audience=settings.auth_audience,
            http=http,
        )

    @property
    def configured(self) -> bool:
        return bool(self._secret or self._jwks_url)

    async def verify(self, token: str) -> IdentityClaims:
        """Verify a token and return its claims.

        Raises ServiceUnavailable when no verification method is configured or
        the key set cannot be fetched, and jwt.PyJWTError for bad tokens.
        """
        if not self.configured:
            raise ServiceUnavailable(
                "Authentication service not initialized",
                detail="neither AUTH_JWT_SECRET nor AUTH_JWKS_URL is set",
            )

        options: dict[str, Any] = {"verify_aud": self._audience is not None}
        kwargs: dict[str, Any] = {"options": options}
        if self._issuer:
            kwargs["issuer"] = self._issuer
        if self._audience:
            kwargs["audience"] = self._audience

        if self._secret:
            payload = jwt.decode(token, self._secret, algorithms=["HS256"], **kwargs)
            return self._claims(payload)

        keys = await self._signing_keys()
        try:
            key_set = jwt.PyJWKSet.from_dict({"keys": keys})
        except jwt.PyJWKSetError as exc:
            logger.error("jwks_unusable", error=str(exc))
            raise ServiceUnavailable(
                "Authentication service not initialized", detail=str(exc)
            ) from exc
        last_error: jwt.PyJWTError | None = None
        for jwk in key_set.keys:
            try:
                payload = jwt.decode(token, jwk.key, algorithms=["RS256"], **kwargs)
                return self._claims(payload)
            except jwt.PyJWTError as exc:
                last_error = exc
        if last_error:
            raise last_error
        msg = "No valid signing key found"
        raise jwt.InvalidTokenError(msg)

    @staticmethod
    def _claims(payload: dict[str, Any]) -> IdentityClaims:
        sub = payload.get("sub") or payload.get("uid")
        if not isinstance(sub, str) or not sub:
            msg = "Token has no subject"
            raise jwt.InvalidTokenError(msg)
        return IdentityClaims(
            sub=sub,
            email=str(payload.get("email", "")),
            name=str(payload.get("name", "")),
            raw=payload,
        )

    async def _signing_keys(self) -> list[dict[str, Any]]:
        if not self._cache.is_stale and self._cache.keys:
            return self._cache.keys
        if self._http is None or self._jwks_url is None:
            raise ServiceUnavailable("Authentication service not initialized")
        try:
            resp = await self._http.get(self._jwks_url)
            resp.raise_for_status()
            keys: list[dict[str, Any]] = resp.json().get("keys", [])
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("jwks_fetch_failed", error=str(exc))
            if self._cache.keys:
                logger.info("jwks_using_stale_cache")
                return self._cache.keys
            raise ServiceUnavailable(
                "Authentication service not initialized", detail=str(exc)
            ) from exc
        self._cache = _JWKSCache(keys=keys, fetched_at=time.monotonic())
        logger.debug("jwks_fetched", key_count=len(keys))
        return keys
