"""Core module - shared configuration and observability.

Chain/DB-neutral plumbing used by the reconciliation engine, the adapters in
/connectors/ and the Temporal activities. Nothing in here knows about a
specific contract ABI or database schema.
"""

__version__ = "1.0.0"
