"""Store HTTP client for the remote catalog REST API.

Thin wrapper over a WooCommerce-compatible ``wc/v3`` API: single and
batch create, paged listing and forced deletes for the resource kinds
the pipelines work with. Duplicate-resource conflicts are translated
into a success carrying the existing id; every other failure is raised
as a domain exception.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog

from storeseed.domain.exceptions import (
    ConflictError,
    RemoteApiError,
    RemoteAuthError,
    RemoteError,
    RemoteUnavailableError,
)
from storeseed.infrastructure.config import REMOTE_BATCH_LIMIT, Settings, settings

logger = structlog.get_logger()


# ============================================================================
# Resource Kinds
# ============================================================================


class ResourceKind(str, Enum):
    """Remote resource kinds."""

    ATTRIBUTE = "attribute"
    ATTRIBUTE_TERM = "attribute_term"
    CATEGORY = "category"
    PRODUCT = "product"
    VARIATION = "variation"


_PATHS: dict[ResourceKind, str] = {
    ResourceKind.ATTRIBUTE: "products/attributes",
    ResourceKind.ATTRIBUTE_TERM: "products/attributes/{parent}/terms",
    ResourceKind.CATEGORY: "products/categories",
    ResourceKind.PRODUCT: "products",
    ResourceKind.VARIATION: "products/{parent}/variations",
}

_BATCHABLE = {ResourceKind.PRODUCT, ResourceKind.VARIATION}

# Conflicts that name the existing resource in data.resource_id
RESOURCE_CONFLICT_CODES = {
    "term_exists",
    "product_invalid_sku",
    "woocommerce_rest_product_not_created",
}

# Attribute conflicts carry no id; the attribute is looked up by slug
ATTRIBUTE_CONFLICT_CODES = {
    "woocommerce_rest_duplicate_attribute_slug",
    "woocommerce_rest_cannot_create",
}


def _is_conflict(code: str | None, data: dict[str, Any]) -> bool:
    if code in RESOURCE_CONFLICT_CODES:
        return bool(data.get("resource_id"))
    return code in ATTRIBUTE_CONFLICT_CODES


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class CreateResult:
    """Outcome of a single create.

    Attributes:
        id: Remote id of the created (or pre-existing) resource.
        existed: True when a duplicate conflict was translated into success.
    """

    id: int
    existed: bool = False


@dataclass(frozen=True)
class BatchItemResult:
    """Per-item outcome of a batch operation."""

    id: int | None
    error: str | None = None
    error_code: str | None = None
    existed: bool = False

    @property
    def ok(self) -> bool:
        """True if the item succeeded."""
        return self.error is None and self.id is not None


@dataclass(frozen=True)
class Page:
    """One page of a list response."""

    items: list[dict[str, Any]]
    has_more: bool


# ============================================================================
# Store Client
# ============================================================================


class StoreClient:
    """HTTP client for one remote store.

    Example usage:
        client = StoreClient.from_settings()
        try:
            result = await client.create(ResourceKind.CATEGORY, {"name": "Hats"})
        finally:
            await client.close()
    """

    def __init__(
        self,
        base_url: str,
        consumer_key: str = "",
        consumer_secret: str = "",
        timeout: float = 30.0,
        page_size: int = 100,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize store client.

        Args:
            base_url: Base URL of the REST API (including the namespace).
            consumer_key: API consumer key, sent with basic auth.
            consumer_secret: API consumer secret.
            timeout: Request timeout in seconds.
            page_size: Items requested per list page (at most 100).
            transport: Optional transport override, used by tests.
        """
        self.base_url = base_url
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.timeout = timeout
        self.page_size = page_size
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        config: Settings = settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "StoreClient":
        """Create a client from application settings.

        Args:
            config: Settings to read store URL and credentials from.
            transport: Optional transport override.

        Returns:
            Configured StoreClient.
        """
        return cls(
            base_url=config.store_api_base,
            consumer_key=config.store_consumer_key,
            consumer_secret=config.store_consumer_secret,
            timeout=config.request_timeout,
            page_size=config.page_size,
            transport=transport,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            auth = None
            if self.consumer_key:
                auth = httpx.BasicAuth(self.consumer_key, self.consumer_secret)
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                auth=auth,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _path(self, kind: ResourceKind, parent_id: int | None) -> str:
        template = _PATHS[kind]
        if "{parent}" in template:
            if parent_id is None:
                raise ValueError(f"{kind.value} requires a parent id")
            return template.format(parent=parent_id)
        return template

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send a request and map failures to domain exceptions.

        Raises:
            RemoteUnavailableError: On transport errors and timeouts.
            RemoteAuthError: On 401 and 403.
            ConflictError: On a duplicate-resource response.
            RemoteApiError: On any other error response.
        """
        client = await self._get_client()
        try:
            response = await client.request(method, path, params=params, json=json)
        except httpx.RequestError as e:
            logger.error("Store request failed", method=method, path=path, error=str(e))
            raise RemoteUnavailableError(
                f"Store unreachable: {e}", details={"method": method, "path": path}
            ) from e

        if response.status_code in (401, 403):
            raise RemoteAuthError(
                f"Store rejected credentials for {method} {path}", response.status_code
            )

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            code = body.get("code")
            data = body.get("data") or {}
            message = body.get("message") or response.text or f"HTTP {response.status_code}"
            error_cls = ConflictError if _is_conflict(code, data) else RemoteApiError
            raise error_cls(message, response.status_code, code, data)

        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        kind: ResourceKind,
        payload: dict[str, Any],
        parent_id: int | None = None,
    ) -> CreateResult:
        """Create one resource.

        Args:
            kind: Resource kind.
            payload: Resource body.
            parent_id: Parent id for terms and variations.

        Returns:
            CreateResult with the new id, or the existing id on conflict.

        Raises:
            RemoteError: If the store rejects the resource.
        """
        path = self._path(kind, parent_id)
        try:
            body = await self._request("POST", path, json=payload)
        except ConflictError as e:
            existing = e.resource_id
            if existing is None and kind == ResourceKind.ATTRIBUTE:
                existing = await self.find_attribute(payload.get("slug") or payload["name"])
            if existing is None:
                raise
            logger.info(
                "Resource already exists, using existing id",
                kind=kind.value,
                resource_id=existing,
                remote_code=e.remote_code,
            )
            return CreateResult(id=existing, existed=True)
        return CreateResult(id=int(body["id"]))

    async def create_batch(
        self,
        kind: ResourceKind,
        payloads: list[dict[str, Any]],
        parent_id: int | None = None,
    ) -> list[BatchItemResult]:
        """Create resources through the batch endpoint.

        The store applies each operation independently. One result is
        returned per payload, in order.

        Args:
            kind: Product or variation.
            payloads: Resource bodies (at most the remote batch limit).
            parent_id: Parent product id for variations.

        Returns:
            Per-item results.

        Raises:
            ValueError: If the kind has no batch endpoint or the batch is too large.
            RemoteError: If the batch call itself fails.
        """
        self._check_batch(kind, len(payloads))
        path = f"{self._path(kind, parent_id)}/batch"
        body = await self._request("POST", path, json={"create": payloads})
        entries = (body or {}).get("create") or []

        results = []
        for index in range(len(payloads)):
            if index >= len(entries):
                results.append(
                    BatchItemResult(id=None, error="Missing from batch response")
                )
                continue
            results.append(self._batch_entry(entries[index]))
        return results

    def _batch_entry(self, entry: dict[str, Any]) -> BatchItemResult:
        error = entry.get("error")
        if error:
            code = error.get("code")
            data = error.get("data") or {}
            if code in RESOURCE_CONFLICT_CODES and data.get("resource_id"):
                return BatchItemResult(id=int(data["resource_id"]), existed=True)
            return BatchItemResult(
                id=None,
                error=error.get("message") or code or "Unknown error",
                error_code=code,
            )
        if not entry.get("id"):
            return BatchItemResult(id=None, error="Batch entry has no id")
        return BatchItemResult(id=int(entry["id"]))

    def _check_batch(self, kind: ResourceKind, size: int) -> None:
        if kind not in _BATCHABLE:
            raise ValueError(f"{kind.value} has no batch endpoint")
        if size > REMOTE_BATCH_LIMIT:
            raise ValueError(
                f"Batch of {size} exceeds the remote limit of {REMOTE_BATCH_LIMIT}"
            )

    async def find_attribute(self, slug: str) -> int | None:
        """Find a global attribute by slug.

        Args:
            slug: Attribute slug, with or without the ``pa_`` prefix.

        Returns:
            Attribute id, or None if no attribute matches.
        """
        bare = slug.lower().removeprefix("pa_")
        page = await self.list_page(ResourceKind.ATTRIBUTE)
        for attribute in page.items:
            candidate = str(attribute.get("slug", "")).lower().removeprefix("pa_")
            if candidate == bare or str(attribute.get("name", "")).lower() == bare:
                return int(attribute["id"])
        return None

    # ------------------------------------------------------------------
    # List
    # ------------------------------------------------------------------

    async def list_page(
        self,
        kind: ResourceKind,
        page: int = 1,
        parent_id: int | None = None,
    ) -> Page:
        """Fetch one page of resources.

        Global attributes are returned in a single unpaged response.

        Args:
            kind: Resource kind.
            page: 1-based page number.
            parent_id: Parent id for terms and variations.

        Returns:
            Page whose ``has_more`` is False once a short page is seen.
        """
        path = self._path(kind, parent_id)
        if kind == ResourceKind.ATTRIBUTE:
            items = await self._request("GET", path) or []
            return Page(items=items, has_more=False)

        items = await self._request(
            "GET", path, params={"page": page, "per_page": self.page_size}
        ) or []
        return Page(items=items, has_more=len(items) >= self.page_size)

    async def paginate(
        self,
        kind: ResourceKind,
        parent_id: int | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Iterate over every resource of a kind, page by page.

        Args:
            kind: Resource kind.
            parent_id: Parent id for terms and variations.

        Yields:
            Resource bodies.
        """
        page = 1
        while True:
            result = await self.list_page(kind, page, parent_id)
            for item in result.items:
                yield item
            if not result.has_more:
                break
            page += 1

    async def list_all(
        self,
        kind: ResourceKind,
        parent_id: int | None = None,
    ) -> list[dict[str, Any]]:
        """Collect every resource of a kind."""
        return [item async for item in self.paginate(kind, parent_id)]

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(
        self,
        kind: ResourceKind,
        resource_id: int,
        parent_id: int | None = None,
    ) -> None:
        """Permanently delete one resource.

        Args:
            kind: Resource kind.
            resource_id: Remote id.
            parent_id: Parent id for terms and variations.
        """
        path = f"{self._path(kind, parent_id)}/{resource_id}"
        await self._request("DELETE", path, params={"force": "true"})

    async def delete_batch(
        self,
        kind: ResourceKind,
        ids: list[int],
        parent_id: int | None = None,
    ) -> list[BatchItemResult]:
        """Delete resources through the batch endpoint.

        Args:
            kind: Product or variation.
            ids: Remote ids (at most the remote batch limit).
            parent_id: Parent product id for variations.

        Returns:
            Per-item results, in the order of ``ids``.
        """
        self._check_batch(kind, len(ids))
        path = f"{self._path(kind, parent_id)}/batch"
        body = await self._request("POST", path, json={"delete": ids})
        entries = (body or {}).get("delete") or []

        results = []
        for index, resource_id in enumerate(ids):
            if index >= len(entries):
                results.append(
                    BatchItemResult(id=resource_id, error="Missing from batch response")
                )
                continue
            entry = entries[index]
            error = entry.get("error")
            if error:
                results.append(
                    BatchItemResult(
                        id=resource_id,
                        error=error.get("message") or "Unknown error",
                        error_code=error.get("code"),
                    )
                )
            else:
                results.append(BatchItemResult(id=resource_id))
        return results

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def verify_connection(self) -> bool:
        """Check that the store answers with our credentials.

        Returns:
            True if the API root responded successfully.
        """
        try:
            await self._request("GET", "")
            return True
        except RemoteError as e:
            logger.warning("Store connection check failed", error=e.message)
            return False
