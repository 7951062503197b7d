"""Command line interface.

    logmetrikks run --input access.csv --output results/

Exit codes:
    0  every analysis succeeded
    1  one or more analyses failed (names reported on stderr)
    2  invalid configuration or usage
    3  ingestion failed (input unavailable, strict-mode rejection)
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Sequence

from pydantic import ValidationError

from logmetrikks.config.settings import (
    AnalysisSettings,
    IngestionSettings,
    OutputSettings,
    Settings,
    get_settings,
)
from logmetrikks.domain.analytics.dtos import ResultKind
from logmetrikks.domain.analytics.models import Granularity
from logmetrikks.exceptions import SinkError
from logmetrikks.runtime.core import create_orchestrator, create_source
from logmetrikks.runtime.plugins import configure_logging
from logmetrikks.services.orchestrator.schemas import RunReport, RunState

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ANALYSIS_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_INGESTION_FAILED = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logmetrikks",
        description="Partitioned batch analytics for web server access logs",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Ingest an access log and run every analysis")
    run.add_argument("--input", required=True, help="Path to the delimited access log")
    run.add_argument("--output", help="Directory for result files (default: OUTPUT_DIRECTORY or ./results)")
    run.add_argument("--top-k", type=int, help="Entries kept by the top pages/user agents analyses")
    run.add_argument(
        "--failure-status",
        type=int,
        action="append",
        dest="failure_statuses",
        help="Status counted as a failure for suspicious IP detection (repeatable)",
    )
    run.add_argument("--threshold", type=int, help="Failure count a client must strictly exceed")
    run.add_argument(
        "--granularity",
        choices=[g.value for g in Granularity],
        help="Bucket size of the traffic trend",
    )
    run.add_argument("--timeout", type=float, help="Deadline in seconds for the analysis phase")
    run.add_argument("--workers", type=int, help="Maximum number of concurrent analyses")
    run.add_argument("--delimiter", help="Field delimiter of the input")
    run.add_argument("--no-header", action="store_true", help="The input has no header row")
    run.add_argument("--strict", action="store_true", help="Abort on the first malformed row")
    run.add_argument("--database-url", help="Also write results to this SQLAlchemy async URL")
    run.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    return parser


def _present(**values: Any) -> dict[str, Any]:
    """Drop options the user did not pass so env/.env values still apply."""
    return {key: value for key, value in values.items() if value is not None}


def build_settings(args: argparse.Namespace) -> Settings:
    """Resolve settings: CLI flags over environment over defaults.

    The environment is read once through ``get_settings()``; each section
    is then rebuilt with the flags on top so the validators see the
    merged values.

    Raises:
        ValidationError: If any resolved value is invalid.
    """
    base = get_settings()
    analysis = AnalysisSettings(
        **{
            **base.analysis.model_dump(),
            **_present(
                top_k=args.top_k,
                failure_statuses=set(args.failure_statuses) if args.failure_statuses else None,
                suspicious_threshold=args.threshold,
                trend_granularity=args.granularity,
                timeout=args.timeout,
                max_workers=args.workers,
            ),
        }
    )
    ingestion = IngestionSettings(
        **{
            **base.ingestion.model_dump(),
            **_present(
                delimiter=args.delimiter,
                has_header=False if args.no_header else None,
                strict=True if args.strict else None,
            ),
        }
    )
    output = OutputSettings(
        **{
            **base.output.model_dump(),
            **_present(directory=args.output, database_url=args.database_url),
        }
    )
    update: dict[str, Any] = {"analysis": analysis, "ingestion": ingestion, "output": output}
    if args.log_level:
        # An explicit level beats APP_DEBUG
        update.update(log_level=args.log_level, debug=False)
    return base.model_copy(update=update)


def render_report(report: RunReport) -> str:
    """Human readable summary of a run."""
    lines: list[str] = []
    stats = report.ingestion
    lines.append(
        f"rows read: {stats.rows_read}, loaded: {stats.records_loaded}, "
        f"rejected: {stats.rejected_rows}"
    )
    for name, outcome in report.outcomes.items():
        result = outcome.result
        if result is None:
            lines.append(f"{name}: FAILED ({outcome.error_kind.value if outcome.error_kind else 'unknown'})")
            continue
        if result.kind is ResultKind.SCALAR:
            lines.append(f"{name}: {result.scalar}")
            continue
        lines.append(f"{name}:")
        for row in result.rows:
            lines.append(f"  {row.key}\t{row.metric}")
    return "\n".join(lines)


async def run_command(settings: Settings, input_path: str) -> int:
    """Execute ``run`` and map the report to an exit code."""
    orchestrator = create_orchestrator(settings)
    source = create_source(settings, input_path)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl-C will not cancel cooperatively")

    try:
        report = await orchestrator.run(source)
    except SinkError as e:
        print(f"Cannot write results: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

    if report.state is RunState.FAILED:
        print(f"Ingestion failed: {report.load_error}", file=sys.stderr)
        return EXIT_INGESTION_FAILED

    print(render_report(report))
    if report.failed:
        details = ", ".join(
            f"{name} ({report.outcomes[name].error_kind.value})"  # type: ignore[union-attr]
            for name in report.failed
        )
        print(f"Failed analyses: {details}", file=sys.stderr)
        return EXIT_ANALYSIS_FAILED
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_logging(settings.effective_log_level)
    logger.debug("Resolved settings: %s", settings.model_dump())

    if args.command == "run":
        return asyncio.run(run_command(settings, args.input))
    parser.error(f"Unknown command {args.command}")
    return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
