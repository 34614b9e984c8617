"""Workflow definitions for the payment reconciliation service."""

from workflows.ping_workflow import PingWorkflow
from workflows.reconcile_workflow import (
    ReconcilePaymentWorkflow,
    ReconcileStage,
    ReconcileWorkflowInput,
    ReconcileWorkflowOutput,
)

__all__ = [
    "PingWorkflow",
    "ReconcilePaymentWorkflow",
    "ReconcileStage",
    "ReconcileWorkflowInput",
    "ReconcileWorkflowOutput",
]
