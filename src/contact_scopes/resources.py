"""Resource label resolvers: (foreign package, resource id) -> localized text.

Group titles may be published by a foreign package as a string resource. The
resolution itself belongs to an external service; this module only provides
the contract and the adapters that reach it.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from contact_scopes.config import ConfigError, ResourceResolverKind, ResourcesConfig
from contact_scopes.errors import ResourceLookupError

logger = logging.getLogger(__name__)

DEFAULT_RESOURCE_TIMEOUT_S = 10.0


class ResourceLabelResolver(abc.ABC):
    """Contract for resolving a foreign-package string resource."""

    @abc.abstractmethod
    async def resolve_text(
        self,
        package: str,
        resource_id: int,
        theme: str | None = None,
    ) -> str | None:
        """Return the resource text, or ``None`` when it does not exist."""
        ...

    async def shutdown(self) -> None:
        """Release resolver resources."""
        return None


class NullResourceResolver(ResourceLabelResolver):
    """Resolver that never finds a resource; group titles use the stored string."""

    async def resolve_text(
        self,
        package: str,
        resource_id: int,
        theme: str | None = None,
    ) -> str | None:
        return None


class StaticResourceResolver(ResourceLabelResolver):
    """Resolver over a fixed ``{package: {resource_id: text}}`` table."""

    def __init__(self, labels: Mapping[str, Mapping[int, str]]) -> None:
        self._labels = {package: dict(table) for package, table in labels.items()}

    async def resolve_text(
        self,
        package: str,
        resource_id: int,
        theme: str | None = None,
    ) -> str | None:
        del theme
        return self._labels.get(package, {}).get(resource_id)


class HttpResourceResolver(ResourceLabelResolver):
    """Resolver backed by an HTTP label service.

    ``GET {base_url}/packages/{package}/strings/{resource_id}`` is expected to
    answer ``{"text": "..."}``; a 404 means the resource does not exist.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_s: float = DEFAULT_RESOURCE_TIMEOUT_S,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_http_client = http_client is None
        self._http_client = (
            http_client
            if http_client is not None
            else httpx.AsyncClient(timeout=httpx.Timeout(timeout_s, connect=min(timeout_s, 5.0)))
        )

    async def resolve_text(
        self,
        package: str,
        resource_id: int,
        theme: str | None = None,
    ) -> str | None:
        params: dict[str, Any] = {}
        if theme is not None:
            params["theme"] = theme
        url = f"{self._base_url}/packages/{package}/strings/{resource_id}"
        response = await self._http_client.get(
            url,
            params=params,
            headers={"Accept": "application/json"},
        )

        if response.status_code == 404:
            logger.debug("Resource %s:%d not found", package, resource_id)
            return None

        if response.status_code < 200 or response.status_code >= 300:
            raise ResourceLookupError(
                status_code=response.status_code,
                message=response.text[:200] or response.reason_phrase,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ResourceLookupError(
                status_code=response.status_code,
                message="Invalid JSON payload from resource label service",
            ) from exc

        if not isinstance(payload, dict):
            raise ResourceLookupError(
                status_code=response.status_code,
                message="Resource label payload must be a JSON object",
            )
        text = payload.get("text")
        return text if isinstance(text, str) else None

    async def shutdown(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()


def resolver_from_config(config: ResourcesConfig) -> ResourceLabelResolver:
    """Build the resolver selected by the ``[resources]`` config section."""
    match config.kind:
        case ResourceResolverKind.STATIC:
            return StaticResourceResolver(config.labels)
        case ResourceResolverKind.HTTP:
            if not config.base_url:
                raise ConfigError("resources.base_url is required when resources.kind is 'http'")
            return HttpResourceResolver(base_url=config.base_url, timeout_s=config.timeout_s)
        case ResourceResolverKind.NONE:
            return NullResourceResolver()
        case _:
            raise ConfigError(f"Unsupported resources.kind: {config.kind!r}")
