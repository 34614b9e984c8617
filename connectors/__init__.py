"""Connectors Package.

Adapters to the two external sources the reconciliation engine consumes:

- chain_reader: payment contract state and logs (web3)
- record_store: persisted agreement records (Supabase/PostgREST, in-memory)

The engine in /reconciliation/ depends only on the models these return.
"""

from connectors.chain_reader import (
    ChainReaderConfig,
    ChainSnapshotReader,
    RECURRING_PAYMENT_ABI,
    SCHEDULED_PAYMENT_ABI,
    load_abi,
)
from connectors.record_store import (
    InMemoryRecordStore,
    RecordNotFoundError,
    RecordStore,
    RecordStoreError,
    RecordStoreRateLimitError,
    RetryConfig,
    SupabaseConfig,
    SupabaseRecordStore,
    parse_record,
)

__all__ = [
    # Chain
    "ChainReaderConfig",
    "ChainSnapshotReader",
    "RECURRING_PAYMENT_ABI",
    "SCHEDULED_PAYMENT_ABI",
    "load_abi",
    # Records
    "InMemoryRecordStore",
    "RecordNotFoundError",
    "RecordStore",
    "RecordStoreError",
    "RecordStoreRateLimitError",
    "RetryConfig",
    "SupabaseConfig",
    "SupabaseRecordStore",
    "parse_record",
]
