"""CLI utility to rebuild daily, weekly and monthly reports for a date range.

Example::

    python -m backend.card_reports.scripts.recalculate_reports 2024-01-01 2024-01-31 \
        --types=weekly,monthly --dry-run
"""

from __future__ import annotations

import argparse
import logging
from datetime import date, datetime
from typing import Optional

from ..config import get_settings
from ..database import session_scope
from ..services.document_store import open_store
from ..services.report_documents import ACTOR_SCRIPT
from ..services.report_paths import parse_report_types
from ..services.report_recalculation import (
    RecalculationResult,
    ReportRecalculationService,
    validate_recalculation_range,
)

LOGGER = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Rebuild card usage reports from the stored records of a date range."
    )
    parser.add_argument("start_date", help="First day to rebuild (YYYY-MM-DD)")
    parser.add_argument("end_date", help="Last day to rebuild, inclusive (YYYY-MM-DD)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report how many reports would be written.",
    )
    parser.add_argument(
        "--types",
        default="daily,weekly,monthly",
        help="Comma separated report types to rebuild (default: daily,weekly,monthly).",
    )
    parser.add_argument(
        "--executor",
        default=ACTOR_SCRIPT,
        help=f"Name recorded as last_updated_by (default: {ACTOR_SCRIPT}).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def _parse_date(raw: str) -> date:
    try:
        return datetime.strptime(raw.strip(), DATE_FORMAT).date()
    except ValueError as exc:
        raise ValueError(f"Invalid date {raw!r}; expected YYYY-MM-DD") from exc


def _log_result(result: RecalculationResult) -> None:
    LOGGER.info("Records processed: %s", result.total_processed)
    if result.dry_run:
        LOGGER.info("Expected report writes: %s", result.expected_processing)
        for stats in result.date_stats or []:
            LOGGER.info(
                "%s: %s records, %s yen", stats["date"], stats["count"], stats["total_amount"]
            )
        return
    LOGGER.info("Reports created: %s", result.created)
    LOGGER.info("Reports updated: %s", result.updated)
    for error in result.errors:
        LOGGER.error("%s %s: %s", error.report_type, error.bucket, error.message)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)
    settings = get_settings()

    try:
        start = _parse_date(args.start_date)
        end = _parse_date(args.end_date)
        report_types = parse_report_types(args.types)
        validate_recalculation_range(start, end, settings.max_recalculation_days)
    except ValueError as exc:
        LOGGER.error("%s", exc)
        return 1

    with session_scope() as session:
        service = ReportRecalculationService(open_store(session, settings), settings=settings)
        result = service.recalculate(
            start,
            end,
            report_types,
            executed_by=args.executor,
            dry_run=args.dry_run,
        )

    _log_result(result)
    if not result.success:
        LOGGER.error("Recalculation finished with %s errors", len(result.errors))
        return 1
    LOGGER.info("Recalculation finished")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
