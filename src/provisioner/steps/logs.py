"""Recent application logs of the deployed service.

Not part of the default step list; run it with ``STEPS=logs`` or the
``provisioner-logs`` command.
"""

from __future__ import annotations

from provisioner.core.models import LogEntry
from provisioner.steps.base import BaseStep


def format_log_entry(entry: LogEntry) -> str:
    return f"{entry.timestamp}  {entry.log_name}  {entry.text}"


class LogTailStep(BaseStep):
    """Print the newest service log entries, newest first."""

    name = "logs"
    description = "Show recent service logs"

    async def _execute(self) -> None:
        context = self.context
        project_id = context.require("project_id", hint="Run the network step first.")
        region = context.state.region or context.config.default_region
        service_name = context.state.service_name or context.config.service.name

        entries = await context.provider.read_logs(
            service_name, region, project_id, context.config.logs_limit,
        )
        self._logger.info("logs_fetched", service=service_name, count=len(entries))
        for entry in entries:
            context.emit(format_log_entry(entry))
        context.emit("--- End of logs ---")
