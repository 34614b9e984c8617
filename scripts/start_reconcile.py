"""Start payment reconciliation workflows on Temporal.

Connects to Temporal, starts one ReconcilePaymentWorkflow per agreement id
and prints each result. With --ping, only checks that a worker answers.
"""

import argparse
import asyncio
import json
import sys
import time
from dataclasses import asdict
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from core.config import load_settings
from core.observability.logging import configure_logging, get_logger
from workflows.ping_workflow import PingWorkflow
from workflows.reconcile_workflow import ReconcilePaymentWorkflow, ReconcileWorkflowInput


logger = get_logger("scripts.start_reconcile")


async def start_workflows(args: argparse.Namespace) -> list:
    """Start the workflows and wait for their results.

    Raises:
        Exception: If a workflow execution fails
    """
    task_queue = args.queue or load_settings().task_queue
    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")

    if args.ping:
        result = await client.execute_workflow(
            PingWorkflow.run,
            id=f"ping-{int(time.time() * 1000)}",
            task_queue=task_queue,
        )
        return [result]

    handles = []
    for agreement_id in args.agreement_ids:
        handle = await client.start_workflow(
            ReconcilePaymentWorkflow.run,
            ReconcileWorkflowInput(
                agreement_id=agreement_id,
                sync_record=args.sync,
                dry_run=args.dry_run,
            ),
            id=f"reconcile-{agreement_id}-{int(time.time())}",
            task_queue=task_queue,
        )
        logger.info(f"Workflow started: {handle.id}")
        handles.append(handle)

    return list(await asyncio.gather(*[h.result() for h in handles]))


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Start payment reconciliation workflows")
    parser.add_argument("agreement_ids", nargs="*", help="Payment record ids")
    parser.add_argument("--queue", "-q", help="Task queue (default: RECONCILE_TASK_QUEUE)")
    parser.add_argument("--sync", action="store_true", help="Write counter/status corrections back")
    parser.add_argument("--dry-run", action="store_true", help="With --sync, plan corrections only")
    parser.add_argument("--ping", action="store_true", help="Only check worker connectivity")
    args = parser.parse_args()

    if not args.ping and not args.agreement_ids:
        parser.error("at least one agreement id is required (or --ping)")

    configure_logging()
    try:
        results = asyncio.run(start_workflows(args))
    except Exception as e:
        logger.error(f"Workflow failed: {e}", exc_info=True)
        return 1

    for result in results:
        if isinstance(result, str):
            print(result)
        else:
            summary = asdict(result)
            summary.pop("timeline", None)
            print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
