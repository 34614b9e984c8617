"""Worker for the payment reconciliation service.

Connects to Temporal, polls the reconciliation task queue and executes the
reconciliation workflow and its activities.

Run with --queue <name> to override the configured task queue.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from core.config import load_settings
from core.observability.logging import configure_logging, get_logger
from core.observability.metrics import get_metrics
from workflows.ping_workflow import PingWorkflow
from workflows.reconcile_workflow import ReconcilePaymentWorkflow
from activities import ALL_ACTIVITIES


logger = get_logger("workers.worker")

WORKFLOWS = [PingWorkflow, ReconcilePaymentWorkflow]


async def run_worker(queue: str = None):
    """Start a worker listening on the reconciliation task queue.

    Args:
        queue: Task queue to poll (defaults to RECONCILE_TASK_QUEUE)

    Raises:
        Exception: If connection to Temporal fails
    """
    settings = load_settings()
    task_queue = queue or settings.task_queue
    client = None

    try:
        client = await get_temporal_client()
        logger.info(f"Connected to Temporal: {client.namespace}")

        worker = Worker(
            client,
            task_queue=task_queue,
            workflows=WORKFLOWS,
            activities=ALL_ACTIVITIES,
        )
        logger.info(
            f"Worker created for queue '{task_queue}'",
            extra_fields={"workflows": len(WORKFLOWS), "activities": len(ALL_ACTIVITIES)},
        )

        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()

    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise
    finally:
        logger.info("Worker metrics", extra_fields=get_metrics().get_summary()["reconciliations"])


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Payment Reconciliation Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=None,
        help="Task queue to poll (default: RECONCILE_TASK_QUEUE or payments-reconcile)"
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines"
    )

    args = parser.parse_args()
    configure_logging(json_format=args.json_logs or load_settings().log_json)
    asyncio.run(run_worker(queue=args.queue))


if __name__ == "__main__":
    main()
