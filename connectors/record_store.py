"""Payment Record Store.

Abstract interface for loading payment agreement records and writing sync
patches back, plus two implementations:

- InMemoryRecordStore: dict-backed, used by the CLI and tests
- SupabaseRecordStore: PostgREST over aiohttp against the Supabase project
  that the keeper writes to

Key Design Principles:
- Methods return PaymentAgreement models, never raw rows
- Retries live here (exponential backoff on 429/5xx), never in the engine
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from pydantic import ValidationError

from core.config import Settings
from core.observability.logging import get_logger
from models.payments import PaymentAgreement


logger = get_logger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class RecordStoreError(Exception):
    """Base exception for record store errors."""
    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RecordNotFoundError(RecordStoreError):
    """No record with the requested id."""
    pass


class RecordStoreRateLimitError(RecordStoreError):
    """Rate limit exceeded (429)."""
    def __init__(self, message: str, retry_after: int = 60):
        super().__init__(message, 429)
        self.retry_after = retry_after


def parse_record(row: Dict[str, Any]) -> PaymentAgreement:
    """Validate a raw row into a PaymentAgreement.

    Raises:
        RecordStoreError: the row cannot describe an agreement
    """
    try:
        return PaymentAgreement.model_validate(row)
    except ValidationError as e:
        raise RecordStoreError(f"Malformed payment record {row.get('id')!r}: {e}")


# =============================================================================
# Interface
# =============================================================================

class RecordStore(ABC):
    """Source of persisted payment agreements."""

    @abstractmethod
    async def get_agreement(self, agreement_id: str) -> PaymentAgreement:
        """Load one agreement. Raises RecordNotFoundError if absent."""

    @abstractmethod
    async def get_children(self, parent: PaymentAgreement) -> List[PaymentAgreement]:
        """Load the per-beneficiary child records of a batch (empty if none)."""

    @abstractmethod
    async def update_agreement(self, agreement_id: str, values: Dict[str, Any]) -> None:
        """Write columns of one agreement record."""

    async def close(self) -> None:
        return None


class InMemoryRecordStore(RecordStore):
    """Dict-backed store.

    Children are the records sharing the parent's transaction_hash.
    """

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self._rows: Dict[str, Dict[str, Any]] = {}
        for row in rows or []:
            self._rows[str(row["id"])] = dict(row)
        self.updates: List[Tuple[str, Dict[str, Any]]] = []

    async def get_agreement(self, agreement_id: str) -> PaymentAgreement:
        row = self._rows.get(agreement_id)
        if row is None:
            raise RecordNotFoundError(f"Payment record not found: {agreement_id}", 404)
        return parse_record(row)

    async def get_children(self, parent: PaymentAgreement) -> List[PaymentAgreement]:
        if not parent.transaction_hash:
            return []
        return [
            parse_record(row)
            for row_id, row in self._rows.items()
            if row_id != parent.id and row.get("transaction_hash") == parent.transaction_hash
        ]

    async def update_agreement(self, agreement_id: str, values: Dict[str, Any]) -> None:
        if agreement_id not in self._rows:
            raise RecordNotFoundError(f"Payment record not found: {agreement_id}", 404)
        self._rows[agreement_id].update(values)
        self.updates.append((agreement_id, dict(values)))


# =============================================================================
# Supabase / PostgREST
# =============================================================================

@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (exponential backoff)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


@dataclass
class SupabaseConfig:
    """Configuration for the Supabase record store.

    Attributes:
        url: Supabase project URL
        service_key: Service role key
        table: Table holding payment records
        batch_link_column: Column shared by a batch parent and its children
        timeout_seconds: Per-request timeout
    """
    url: str
    service_key: str
    table: str = "recurring_payments"
    batch_link_column: str = "transaction_hash"
    timeout_seconds: int = 30
    retry_config: RetryConfig = field(default_factory=RetryConfig)

    @property
    def rest_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1/{self.table}"


class SupabaseRecordStore(RecordStore):
    """PostgREST client for payment records.

    Usage:
        store = SupabaseRecordStore.from_settings(load_settings())
        agreement = await store.get_agreement(agreement_id)
        children = await store.get_children(agreement)
        await store.close()
    """

    def __init__(self, config: SupabaseConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings: Settings, table: str = "recurring_payments") -> "SupabaseRecordStore":
        settings.require_record_store()
        return cls(SupabaseConfig(url=settings.supabase_url, service_key=settings.supabase_key, table=table))

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_headers(self) -> Dict[str, str]:
        return {
            "apikey": self.config.service_key,
            "Authorization": f"Bearer {self.config.service_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        params: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, Any]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Make a PostgREST request with automatic retries.

        Raises:
            RecordStoreRateLimitError: Rate limit exceeded after retries
            RecordStoreError: Other API errors
        """
        session = await self._get_session()
        retry_config = self.config.retry_config
        headers = self._get_headers()
        if extra_headers:
            headers.update(extra_headers)
        last_error: Optional[Exception] = None

        for attempt in range(retry_config.max_retries + 1):
            try:
                timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
                async with session.request(
                    method,
                    self.config.rest_url,
                    headers=headers,
                    params=params,
                    json=data,
                    timeout=timeout,
                ) as response:
                    response_text = await response.text()

                    if response.status < 400:
                        return json.loads(response_text) if response_text else None

                    if response.status == 429:
                        retry_after = int(response.headers.get("Retry-After", 5))
                        if attempt < retry_config.max_retries:
                            logger.warning(f"Rate limited by record store, waiting {retry_after}s...")
                            await asyncio.sleep(retry_after)
                            continue
                        raise RecordStoreRateLimitError("Rate limit exceeded", retry_after)

                    if response.status in retry_config.retry_on_status and attempt < retry_config.max_retries:
                        delay = retry_config.get_delay(attempt)
                        logger.warning(
                            f"Record store request failed with {response.status}, "
                            f"retrying in {delay:.1f}s (attempt {attempt + 1}/{retry_config.max_retries})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    raise RecordStoreError(
                        f"Record store error {response.status}: {response_text}",
                        response.status,
                        response_text,
                    )

            except RecordStoreError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                if attempt < retry_config.max_retries:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(f"Record store request failed with {type(e).__name__}: {e}, retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue
                raise RecordStoreError(f"Request failed after {retry_config.max_retries} retries: {e}")

        raise RecordStoreError(f"Request failed: {last_error}")

    async def get_agreement(self, agreement_id: str) -> PaymentAgreement:
        rows = await self._request("GET", params={"select": "*", "id": f"eq.{agreement_id}"})
        if not rows:
            raise RecordNotFoundError(f"Payment record not found: {agreement_id}", 404)
        return parse_record(rows[0])

    async def get_children(self, parent: PaymentAgreement) -> List[PaymentAgreement]:
        link_value = getattr(parent, self.config.batch_link_column, None)
        if not link_value:
            return []
        rows = await self._request("GET", params={
            "select": "*",
            self.config.batch_link_column: f"eq.{link_value}",
            "id": f"neq.{parent.id}",
            "order": "created_at.asc",
        })
        return [parse_record(row) for row in rows or []]

    async def update_agreement(self, agreement_id: str, values: Dict[str, Any]) -> None:
        await self._request(
            "PATCH",
            params={"id": f"eq.{agreement_id}"},
            data=values,
            extra_headers={"Prefer": "return=minimal"},
        )
        logger.info(f"Record {agreement_id} updated", extra_fields={"columns": ",".join(sorted(values))})
