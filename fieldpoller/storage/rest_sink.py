"""
REST Upsert Sink

Writes validated rows to a PostgREST-compatible endpoint (e.g. Supabase):
POST {url}/rest/v1/{table}?on_conflict=timestamp with
Prefer: resolution=merge-duplicates, so a repeated bucket updates the
existing row instead of failing.

No retries here: a failed write is logged by the caller and the next
tick writes its own bucket.
"""

import httpx

from fieldpoller.common.exceptions import PersistenceError
from fieldpoller.common.logging_setup import get_service_logger
from fieldpoller.services.polling.normalizer import ValidatedRow
from .base import RowSink

logger = get_service_logger("storage.rest")


class RestSink(RowSink):
    """Upserts rows over HTTP with one shared httpx.AsyncClient"""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        tables: dict[str, list[str]],
        tz_name: str = "America/Tegucigalpa",
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(tables, tz_name)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s

        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_s,
                transport=self._transport,
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Prefer": "resolution=merge-duplicates,return=minimal",
        }
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def upsert(self, row: ValidatedRow) -> int:
        if not row.values:
            return 0

        record = {"timestamp": self.format_timestamp(row), **row.values}
        url = f"{self.base_url}/rest/v1/{row.table}"

        client = await self._get_client()
        try:
            response = await client.post(
                url,
                params={"on_conflict": "timestamp"},
                json=[record],
                headers=self._headers(),
            )
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            try:
                error_body = e.response.text
            except Exception:
                error_body = "Could not read response body"
            raise PersistenceError(
                f"HTTP {e.response.status_code} from {row.table}: {error_body}",
                table=row.table,
            ) from e

        except httpx.TimeoutException as e:
            raise PersistenceError(
                f"Timeout writing {row.table} after {self.timeout_s}s",
                table=row.table,
            ) from e

        except httpx.HTTPError as e:
            raise PersistenceError(
                f"{e.__class__.__name__} writing {row.table}: {e}",
                table=row.table,
            ) from e

        logger.debug(f"Upserted {row.table} @ {record['timestamp']} via REST")
        return 1

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
