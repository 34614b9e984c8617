"""Chain Snapshot Reader.

Reads payment contract state and monthly payment logs with web3's async
provider. Every field is read independently and concurrently; a read that
fails (revert, RPC timeout, missing method on an older contract) degrades to
None for that one field and never aborts the snapshot.

Usage:
    reader = ChainSnapshotReader.from_settings(load_settings())
    snapshot = await reader.read_snapshot("0xabc...")
    snapshots = await reader.read_many(["0xabc...", "0xdef..."])
"""

import asyncio
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, List, Optional, Sequence

from web3 import AsyncWeb3, Web3

from core.config import Settings
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from models.chain import ChainSnapshot, LogKind, PaymentLogEntry


logger = get_logger(__name__)


# =============================================================================
# ABI
# =============================================================================

def _view(name: str, output: str, inputs: Optional[List[dict]] = None) -> dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": inputs or [],
        "outputs": [{"name": "", "type": output}],
    }


RECURRING_PAYMENT_ABI = [
    _view("totalMonths", "uint256"),
    _view("executedMonths", "uint256"),
    _view("nextMonthToProcess", "uint256"),
    _view("cancelled", "bool"),
    _view("monthExecuted", "bool", [{"name": "month", "type": "uint256"}]),
    {
        "type": "event",
        "name": "MonthlyPaymentExecuted",
        "anonymous": False,
        "inputs": [
            {"name": "month", "type": "uint256", "indexed": True},
            {"name": "payee", "type": "address", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
            {"name": "fee", "type": "uint256", "indexed": False},
            {"name": "nextPaymentDate", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "MonthlyPaymentFailed",
        "anonymous": False,
        "inputs": [
            {"name": "month", "type": "uint256", "indexed": True},
            {"name": "payer", "type": "address", "indexed": True},
            {"name": "reason", "type": "string", "indexed": False},
        ],
    },
]

SCHEDULED_PAYMENT_ABI = [
    _view("released", "bool"),
    _view("cancelled", "bool"),
]


def load_abi(path: Optional[str]) -> Optional[list]:
    """Load a contract ABI from a JSON file (plain list or hardhat artifact)."""
    if not path:
        return None
    with open(Path(path), "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict) and "abi" in data:
        return data["abi"]
    return data


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class ChainReaderConfig:
    """Configuration for chain reads.

    Attributes:
        rpc_url: JSON-RPC endpoint
        from_block: First block scanned for payment logs
        max_concurrency: Upper bound on in-flight RPC calls per reader
        request_timeout: Seconds before a single RPC call is abandoned
    """
    rpc_url: str
    from_block: int = 0
    max_concurrency: int = 8
    request_timeout: float = 20.0


# =============================================================================
# Reader
# =============================================================================

class ChainSnapshotReader:
    """Reads ChainSnapshots for payment contracts.

    Never raises for a failing field: the field is None in the snapshot, the
    failure is logged at warning level and counted in metrics.
    """

    def __init__(
        self,
        config: ChainReaderConfig,
        w3: Optional[Any] = None,
        recurring_abi: Optional[list] = None,
        scheduled_abi: Optional[list] = None,
    ):
        self.config = config
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            config.rpc_url,
            request_kwargs={"timeout": config.request_timeout},
        ))
        self.recurring_abi = recurring_abi or RECURRING_PAYMENT_ABI
        self.scheduled_abi = scheduled_abi or SCHEDULED_PAYMENT_ABI
        self._semaphore = asyncio.Semaphore(config.max_concurrency)

    @classmethod
    def from_settings(cls, settings: Settings, abi_path: Optional[str] = None) -> "ChainSnapshotReader":
        return cls(ChainReaderConfig(rpc_url=settings.rpc_url), recurring_abi=load_abi(abi_path))

    def _contract(self, address: str, abi: list):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    async def _current_block(self) -> int:
        return await self.w3.eth.block_number

    async def _safe(self, field_name: str, call: Awaitable) -> Optional[Any]:
        """Await one RPC call; None on any failure."""
        async with self._semaphore:
            try:
                return await call
            except Exception as e:
                logger.warning(
                    f"Chain read failed for {field_name}: {type(e).__name__}: {e}",
                    extra_fields={"field": field_name},
                )
                get_metrics().record_chain_read_failure(field_name)
                return None

    async def _read_logs(
        self,
        contract,
        event_name: str,
        kind: LogKind,
        to_block: Optional[int] = None,
    ) -> Optional[List[PaymentLogEntry]]:
        # Logs stop at the block the contract state is read at
        range_kwargs = {"from_block": self.config.from_block}
        if to_block is not None:
            range_kwargs["to_block"] = to_block

        async def fetch():
            event = getattr(contract.events, event_name)
            return await event.get_logs(**range_kwargs)

        logs = await self._safe(event_name, fetch())
        if logs is None:
            return None

        entries = []
        for log in logs:
            try:
                entries.append(PaymentLogEntry(
                    status=kind,
                    month_number=int(log["args"]["month"]),
                    block_number=int(log["blockNumber"]),
                    log_index=int(log["logIndex"]),
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping undecodable {event_name} log: {e}")
        return entries

    async def read_snapshot(
        self,
        contract_address: str,
        recurring: bool = True,
        block_identifier: Optional[int] = None,
    ) -> ChainSnapshot:
        """Read one contract.

        Args:
            contract_address: Payment contract
            recurring: RecurringPaymentERC20 (True) or single scheduled payment (False)
            block_identifier: Block to read at (defaults to the latest block)

        Returns:
            ChainSnapshot, with None for every field that could not be read
        """
        started = time.perf_counter()
        with with_correlation(contract_address=contract_address, stage="chain_read"):
            try:
                abi = self.recurring_abi if recurring else self.scheduled_abi
                contract = self._contract(contract_address, abi)
            except (TypeError, ValueError) as e:
                logger.warning(f"Invalid contract address: {e}")
                get_metrics().record_chain_read_failure("contract_address")
                return ChainSnapshot.empty(contract_address)

            version = block_identifier
            if version is None:
                version = await self._safe("blockNumber", self._current_block())
            call_kwargs = {"block_identifier": version} if version is not None else {}

            async def call(fn, *args):
                return await fn(*args).call(**call_kwargs)

            if not recurring:
                released, cancelled = await asyncio.gather(
                    self._safe("released", call(contract.functions.released)),
                    self._safe("cancelled", call(contract.functions.cancelled)),
                )
                snapshot = ChainSnapshot(
                    contract_address=contract_address,
                    version=version,
                    released=released,
                    cancelled=cancelled,
                )
                get_metrics().record_snapshot_read((time.perf_counter() - started) * 1000)
                return snapshot

            total, executed, next_month, cancelled, executed_logs, failed_logs = await asyncio.gather(
                self._safe("totalMonths", call(contract.functions.totalMonths)),
                self._safe("executedMonths", call(contract.functions.executedMonths)),
                self._safe("nextMonthToProcess", call(contract.functions.nextMonthToProcess)),
                self._safe("cancelled", call(contract.functions.cancelled)),
                self._read_logs(contract, "MonthlyPaymentExecuted", LogKind.EXECUTED, version),
                self._read_logs(contract, "MonthlyPaymentFailed", LogKind.FAILED, version),
            )

            month_executed = None
            if total is not None:
                flags = await asyncio.gather(*[
                    self._safe("monthExecuted", call(contract.functions.monthExecuted, index))
                    for index in range(int(total))
                ])
                month_executed = [bool(flag) if flag is not None else None for flag in flags]

            snapshot = ChainSnapshot(
                contract_address=contract_address,
                version=version,
                total_months=int(total) if total is not None else None,
                executed_months=int(executed) if executed is not None else None,
                next_month_to_process=int(next_month) if next_month is not None else None,
                cancelled=bool(cancelled) if cancelled is not None else None,
                month_executed=month_executed,
                events=(executed_logs or []) + (failed_logs or []),
            )

            duration_ms = (time.perf_counter() - started) * 1000
            get_metrics().record_snapshot_read(duration_ms)
            logger.debug(
                "Snapshot read",
                extra_fields={
                    "version": version,
                    "events": len(snapshot.events),
                    "missing": ",".join(snapshot.failed_fields) or None,
                    "duration_ms": round(duration_ms, 1),
                },
            )
            return snapshot

    async def read_many(
        self,
        contract_addresses: Sequence[str],
        recurring: bool = True,
    ) -> List[ChainSnapshot]:
        """Read several contracts concurrently, one snapshot per address, in order."""
        if not contract_addresses:
            return []
        block = await self._safe("blockNumber", self._current_block())
        return list(await asyncio.gather(*[
            self.read_snapshot(address, recurring=recurring, block_identifier=block)
            for address in contract_addresses
        ]))
