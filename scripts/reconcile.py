"""
Reconcile a payment agreement from the command line.

Two sources:
- offline: records and chain snapshots read from JSON files
- --live: records from the Supabase record store, snapshots from the RPC node

Examples:
    python scripts/reconcile.py pay_123 --records rows.json --snapshots snaps.json
    python scripts/reconcile.py pay_123 --live --sync --dry-run
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from connectors.chain_reader import ChainSnapshotReader
from connectors.record_store import InMemoryRecordStore, RecordStore, RecordStoreError, SupabaseRecordStore
from core.config import load_settings
from core.observability.logging import configure_logging, get_logger
from models.chain import ChainSnapshot
from models.payments import PaymentAgreement
from models.timeline import AgreementTimeline
from reconciliation.engine import agreement_kind, is_recurring_payment, reconcile_agreement
from reconciliation.sync import plan_record_sync
from reconciliation.timeline import next_installment_amount


logger = get_logger("scripts.reconcile")


def _load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _as_list(data: Any) -> List[Dict[str, Any]]:
    return data if isinstance(data, list) else [data]


async def load_inputs(
    store: RecordStore,
    agreement_id: str,
    reader: Optional[ChainSnapshotReader],
    snapshots: List[ChainSnapshot],
) -> Tuple[PaymentAgreement, List[PaymentAgreement], Optional[ChainSnapshot], List[ChainSnapshot]]:
    """Agreement, batch children, own snapshot and child snapshots."""
    agreement = await store.get_agreement(agreement_id)
    children = await store.get_children(agreement) if agreement.batch else []

    addresses: List[str] = []
    for address in [agreement.contract_address] + [c.contract_address for c in children]:
        if address and address.lower() not in {a.lower() for a in addresses}:
            addresses.append(address)

    if reader is not None and addresses:
        snapshots = await reader.read_many(addresses, recurring=is_recurring_payment(agreement, children))

    by_address = {s.contract_address.lower(): s for s in snapshots if s.contract_address}
    own_key = agreement.contract_address.lower() if agreement.contract_address else None
    child_snapshots = [by_address[a.lower()] for a in addresses if a.lower() != own_key and a.lower() in by_address]
    own = by_address.get(own_key) if own_key else None
    return agreement, children, own, child_snapshots


def print_timeline(timeline: AgreementTimeline, show_all: bool) -> None:
    """Print a human-readable timeline."""
    progress = timeline.progress()
    print(f"\nPayment {timeline.agreement_id}: {timeline.rollup_status.value.upper()}")
    print(f"  Installments: {progress.processed}/{progress.total} processed ({progress.percent}%)")
    if timeline.snapshot_version is not None:
        print(f"  Chain block:  {timeline.snapshot_version}")

    rows = timeline.installments if show_all else timeline.historical()
    if not rows:
        print("  No payment activity yet")
        return

    print()
    for inst in rows:
        due = time.strftime("%Y-%m-%d", time.gmtime(inst.due_time))
        amount = inst.amount if inst.amount is not None else "-"
        print(f"  Month {inst.month_number:>3}  {due}  {inst.status.value:<10} {amount}")
        for outcome in inst.beneficiary_breakdown or []:
            print(f"      {outcome.address}  {outcome.status.value:<10} {outcome.amount if outcome.amount is not None else '-'}")


async def run(args: argparse.Namespace) -> int:
    settings = load_settings()
    cadence = args.cadence or settings.cadence_seconds
    now = args.now or int(time.time())

    reader: Optional[ChainSnapshotReader] = None
    if args.live:
        store: RecordStore = SupabaseRecordStore.from_settings(settings)
        reader = ChainSnapshotReader.from_settings(settings, abi_path=args.abi)
        snapshots: List[ChainSnapshot] = []
    else:
        if not args.records:
            logger.error("--records is required without --live")
            return 2
        store = InMemoryRecordStore(_as_list(_load_json(args.records)))
        snapshots = [ChainSnapshot.model_validate(s) for s in _as_list(_load_json(args.snapshots))] if args.snapshots else []

    try:
        agreement, children, snapshot, child_snapshots = await load_inputs(store, args.agreement_id, reader, snapshots)

        timeline = reconcile_agreement(
            agreement,
            snapshot,
            now,
            children=children,
            child_snapshots=child_snapshots,
            cadence_seconds=cadence,
            preferred_lead_address=args.lead,
        )

        patch = None
        if args.sync and agreement_kind(agreement) == "recurring":
            patch = plan_record_sync(agreement, snapshot, cadence)
            if patch is not None and not args.dry_run:
                await store.update_agreement(agreement.id, patch.to_update())
    except RecordStoreError as e:
        logger.error(str(e))
        return 1
    finally:
        await store.close()

    executed = snapshot.executed_months if snapshot is not None else None
    next_amount = next_installment_amount(agreement, executed)

    if args.json:
        output = timeline.model_dump(mode="json")
        output["next_amount"] = str(next_amount) if next_amount is not None else None
        output["record_patch"] = patch.to_dict() if patch is not None else None
        print(json.dumps(output, indent=2))
        return 0

    print_timeline(timeline, args.all)
    if next_amount is not None:
        print(f"\n  Next execution amount: {next_amount}")
    if args.sync:
        if patch is None:
            print("\n  Record matches the contract")
        else:
            verb = "Would update" if args.dry_run else "Updated"
            print(f"\n  {verb} record: {patch.to_update()}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Reconcile a payment agreement against its contract")
    parser.add_argument("agreement_id", help="Payment record id")
    parser.add_argument("--records", help="JSON file with payment record rows (offline mode)")
    parser.add_argument("--snapshots", help="JSON file with chain snapshots (offline mode)")
    parser.add_argument("--live", action="store_true", help="Read records from Supabase and state from the RPC node")
    parser.add_argument("--abi", help="Contract ABI JSON (defaults to the built-in RecurringPaymentERC20 ABI)")
    parser.add_argument("--now", type=int, help="Unix time to evaluate against (default: current time)")
    parser.add_argument("--cadence", type=int, help="Seconds between installments")
    parser.add_argument("--lead", help="Beneficiary address to list first in batch breakdowns")
    parser.add_argument("--all", action="store_true", help="Show every installment, not only past activity")
    parser.add_argument("--sync", action="store_true", help="Align the record's counter and status with the contract")
    parser.add_argument("--dry-run", action="store_true", help="With --sync, print the update without writing it")
    parser.add_argument("--json", action="store_true", help="Print the timeline as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
