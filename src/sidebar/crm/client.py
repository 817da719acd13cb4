"""Async HTTP client for the CRM's record API.

Provides CrmClient with retry logic (tenacity, exponential backoff) for
transient failures. Every non-2xx response is raised as CrmApiError
carrying the HTTP status and the response body text, after retries for
rate limiting and server errors are exhausted.

Endpoints used:
- POST  /objects/{object}/records/query
- GET   /objects/{object}/records/{record_id}
- POST  /objects/{object}/records
- PATCH /objects/{object}/records/{record_id}
- GET   /objects/{object}/attributes
- GET   /objects/{object}/attributes/{attribute}/statuses
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from src.sidebar.config import Settings, get_settings

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class CrmApiError(Exception):
    """Non-2xx response from the CRM backend."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"CRM API error ({status_code}): {body}")


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, CrmApiError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))


_crm_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)


class CrmClient:
    """Async client for the CRM record API.

    Uses a fresh httpx.AsyncClient per request, authenticated with a
    bearer token.

    Args:
        api_key: CRM API token.
        base_url: API root, e.g. ``https://api.attio.com/v2``.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, api_key: str, base_url: str, timeout: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> CrmClient:
        settings = settings or get_settings()
        return cls(
            api_key=settings.CRM_API_KEY,
            base_url=settings.CRM_BASE_URL,
            timeout=settings.CRM_TIMEOUT_SECONDS,
        )

    def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client with auth headers."""
        return httpx.AsyncClient(headers=self._headers, timeout=self._timeout)

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    @staticmethod
    def _parse(response: httpx.Response, method: str, path: str) -> dict[str, Any]:
        """Return the JSON body, raising CrmApiError on a non-2xx status."""
        if not response.is_success:
            logger.warning(
                "crm.request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise CrmApiError(response.status_code, response.text)
        return response.json()

    # ── Records ────────────────────────────────────────────────────────────

    @_crm_retry
    async def query_records(
        self,
        object_type: str,
        *,
        query_filter: dict[str, Any] | None = None,
        sorts: list[dict[str, Any]] | None = None,
        limit: int = 500,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """Query records of an object type.

        Args:
            object_type: Object slug or id.
            query_filter: Optional backend filter expression.
            sorts: Optional sort specification.
            limit: Maximum number of records in the batch.
            offset: Number of records to skip (pagination).

        Returns:
            Raw record dicts from the ``data`` key.
        """
        path = f"/objects/{object_type}/records/query"
        body: dict[str, Any] = {"limit": limit}
        if query_filter is not None:
            body["filter"] = query_filter
        if sorts is not None:
            body["sorts"] = sorts
        if offset:
            body["offset"] = offset

        async with self._client() as client:
            response = await client.post(self._url(path), json=body)
        data = self._parse(response, "POST", path).get("data") or []
        logger.debug("crm.records_queried", object_type=object_type, count=len(data))
        return data

    @_crm_retry
    async def get_record(self, object_type: str, record_id: str) -> dict[str, Any]:
        """Fetch a single record by id."""
        path = f"/objects/{object_type}/records/{record_id}"
        async with self._client() as client:
            response = await client.get(self._url(path))
        return self._parse(response, "GET", path).get("data") or {}

    async def create_record(self, object_type: str, values: dict[str, Any]) -> dict[str, Any]:
        """Create a record. Not retried: a replayed create could duplicate it."""
        path = f"/objects/{object_type}/records"
        async with self._client() as client:
            response = await client.post(self._url(path), json={"data": {"values": values}})
        record = self._parse(response, "POST", path).get("data") or {}
        logger.info(
            "crm.record_created",
            object_type=object_type,
            record_id=(record.get("id") or {}).get("record_id"),
        )
        return record

    @_crm_retry
    async def update_record(
        self, object_type: str, record_id: str, values: dict[str, Any]
    ) -> dict[str, Any]:
        """Update attribute values on an existing record."""
        path = f"/objects/{object_type}/records/{record_id}"
        async with self._client() as client:
            response = await client.patch(self._url(path), json={"data": {"values": values}})
        record = self._parse(response, "PATCH", path).get("data") or {}
        logger.info(
            "crm.record_updated",
            object_type=object_type,
            record_id=record_id,
            attributes=sorted(values),
        )
        return record

    # ── Attribute Metadata ─────────────────────────────────────────────────

    @_crm_retry
    async def list_attributes(self, object_type: str) -> list[dict[str, Any]]:
        """List attribute definitions for an object type."""
        path = f"/objects/{object_type}/attributes"
        async with self._client() as client:
            response = await client.get(self._url(path))
        return self._parse(response, "GET", path).get("data") or []

    @_crm_retry
    async def list_statuses(self, object_type: str, attribute: str) -> list[dict[str, Any]]:
        """List the status options of a status-typed attribute."""
        path = f"/objects/{object_type}/attributes/{attribute}/statuses"
        async with self._client() as client:
            response = await client.get(self._url(path))
        return self._parse(response, "GET", path).get("data") or []
