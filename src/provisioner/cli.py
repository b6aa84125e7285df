"""
provisioner.cli - Command-Line Entry Points
=============================================

    provisioner [KEY=VALUE ...]       run the configured steps
    provisioner-logs [KEY=VALUE ...]  show recent service logs

There is no flag parsing: every argument of the form KEY=VALUE is exported to
the environment before configuration and state are loaded; anything else is
ignored with a warning.

Exit Codes:
    0  every step completed
    1  a step failed, or configuration/state was invalid
    2  the runtime cannot run the pipeline (interpreter, missing CLI)

Fatal diagnostics (and their remediation hints) go to stderr; progress and
warnings go to stdout.
"""

from __future__ import annotations

import asyncio
import os
import sys
from typing import Optional, Sequence

import structlog

from provisioner.core.config import load_config
from provisioner.core.exceptions import ProvisionerError, UnsupportedContextError
from provisioner.core.logging import configure_logging
from provisioner.core.state import PipelineRun
from provisioner.facade import Provisioner
from provisioner.orchestration.overrides import apply_overrides


logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_UNSUPPORTED = 2


def _report(message: str, hint: Optional[str] = None) -> None:
    print(f"ERROR: {message}", file=sys.stderr)
    if hint:
        print(f"Hint: {hint}", file=sys.stderr)


def _report_run(run: PipelineRun) -> int:
    if run.succeeded:
        logger.info("run_succeeded", steps=run.completed_steps, skipped=run.skipped_steps)
        return EXIT_OK
    failed = run.failed_step
    if failed is not None:
        _report(failed.error_message or f"Step '{failed.step_name}' failed", failed.hint)
    else:
        _report("Pipeline did not complete")
    return EXIT_FAILURE


async def _run(tokens: Sequence[str], steps: Optional[Sequence[str]]) -> int:
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    apply_overrides(tokens)

    try:
        config = load_config(os.environ.get("PROVISIONER_CONFIG"))
        configure_logging(config.log_level)
        async with Provisioner(config) as provisioner:
            run = await provisioner.run(steps)
    except UnsupportedContextError as e:
        _report(e.message, e.hint)
        return EXIT_UNSUPPORTED
    except ProvisionerError as e:
        _report(e.message, e.hint)
        return EXIT_FAILURE
    except FileNotFoundError as e:
        _report(str(e))
        return EXIT_FAILURE

    return _report_run(run)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the provisioning pipeline."""
    tokens = sys.argv[1:] if argv is None else list(argv)
    return asyncio.run(_run(tokens, None))


def logs_main(argv: Optional[Sequence[str]] = None) -> int:
    """Show recent logs of the deployed service."""
    tokens = sys.argv[1:] if argv is None else list(argv)
    return asyncio.run(_run(tokens, ["logs"]))


if __name__ == "__main__":
    sys.exit(main())
