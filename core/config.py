"""Runtime configuration loaded from the environment.

Values come from environment variables, with a `.env` file at the repository
root loaded first when present:

- PAYMENT_CADENCE_SECONDS: seconds between installments (default 30 days)
- RPC_URL: JSON-RPC endpoint for chain reads
- SUPABASE_URL / SUPABASE_SERVICE_KEY: record store
- RECONCILE_TASK_QUEUE: Temporal task queue polled by the worker
- LOG_JSON: "1"/"true" for JSON log lines
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parents[1] / ".env"
if env_path.exists():
    load_dotenv(env_path)


# 30 days, matches the deployed RecurringPaymentERC20 contracts
DEFAULT_CADENCE_SECONDS = 2592000

DEFAULT_RPC_URL = "https://mainnet.base.org"
DEFAULT_TASK_QUEUE = "payments-reconcile"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class Settings:
    """Deployment settings.

    Attributes:
        cadence_seconds: Interval between two installments
        rpc_url: Chain JSON-RPC endpoint
        supabase_url: Base URL of the Supabase project (record store)
        supabase_key: Service key for the record store
        task_queue: Temporal task queue name
        log_json: Emit JSON log lines instead of human-readable ones
    """
    cadence_seconds: int = DEFAULT_CADENCE_SECONDS
    rpc_url: str = DEFAULT_RPC_URL
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    task_queue: str = DEFAULT_TASK_QUEUE
    log_json: bool = False

    def require_record_store(self) -> None:
        """Raise if the record store credentials are missing."""
        if not self.supabase_url or not self.supabase_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables must be set "
                "to load payment records"
            )


def load_settings() -> Settings:
    """Build settings from the current environment."""
    cadence = _env_int("PAYMENT_CADENCE_SECONDS", DEFAULT_CADENCE_SECONDS)
    if cadence <= 0:
        raise ValueError(f"PAYMENT_CADENCE_SECONDS must be positive, got {cadence}")

    return Settings(
        cadence_seconds=cadence,
        rpc_url=os.getenv("RPC_URL", DEFAULT_RPC_URL),
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY"),
        task_queue=os.getenv("RECONCILE_TASK_QUEUE", DEFAULT_TASK_QUEUE),
        log_json=_env_bool("LOG_JSON"),
    )


def get_cadence_seconds() -> int:
    """Cadence used when a caller does not pass one explicitly."""
    return load_settings().cadence_seconds
