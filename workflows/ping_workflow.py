"""Connectivity check workflow."""

from temporalio import workflow


@workflow.defn
class PingWorkflow:
    """Returns "ok" once a worker on the reconciliation queue picks it up."""

    @workflow.run
    async def run(self) -> str:
        return "ok"
