"""Chain activities for the payment reconciliation pipeline.

Read contract state and payment logs. Individual field failures never fail
the activity; they come back as None fields in the snapshot.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from temporalio import activity

from connectors.chain_reader import ChainSnapshotReader
from core.config import load_settings
from core.observability.tracking import track_activity


_chain_reader: Optional[ChainSnapshotReader] = None


def configure_chain_reader(reader: Optional[ChainSnapshotReader]) -> None:
    """Use `reader` for every chain activity in this process (None resets)."""
    global _chain_reader
    _chain_reader = reader


def get_chain_reader() -> ChainSnapshotReader:
    global _chain_reader
    if _chain_reader is None:
        _chain_reader = ChainSnapshotReader.from_settings(load_settings())
    return _chain_reader


@dataclass
class FetchSnapshotsInput:
    """Input for fetch_snapshots activity.

    Attributes:
        contract_addresses: Contracts to read, in order
        recurring: RecurringPaymentERC20 contracts (False = single scheduled payments)
    """
    contract_addresses: List[str]
    recurring: bool = True


@dataclass
class FetchSnapshotsOutput:
    """Output from fetch_snapshots activity.

    Attributes:
        snapshots: Serialized ChainSnapshots, same order as the input
        incomplete: Addresses whose snapshot is missing at least one field
    """
    snapshots: List[dict] = field(default_factory=list)
    incomplete: List[str] = field(default_factory=list)


@activity.defn
async def fetch_snapshots(input: FetchSnapshotsInput) -> FetchSnapshotsOutput:
    """Read every contract at a single block."""
    with track_activity("fetch_snapshots"):
        activity.logger.info(f"Reading {len(input.contract_addresses)} payment contracts")

        snapshots = await get_chain_reader().read_many(input.contract_addresses, recurring=input.recurring)

        incomplete = []
        for snapshot in snapshots:
            # Single payments only expose released/cancelled
            missing = snapshot.failed_fields if input.recurring else [
                name for name in ("released", "cancelled") if getattr(snapshot, name) is None
            ]
            if missing:
                incomplete.append(snapshot.contract_address)
                activity.logger.warning(f"Partial snapshot for {snapshot.contract_address}: missing {missing}")

        return FetchSnapshotsOutput(
            snapshots=[snapshot.model_dump(mode="json") for snapshot in snapshots],
            incomplete=incomplete,
        )
