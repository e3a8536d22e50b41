"""CLI utility to hard delete soft-deleted card usage records."""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from ..database import session_scope
from ..services.document_store import open_store
from ..services.report_consistency import ReportConsistencyService

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Delete records with is_active=false and remove them from the reports "
            "that still list them."
        )
    )
    parser.add_argument("--yes", action="store_true", help="Delete without asking for confirmation.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def _confirm(prompt: str) -> bool:
    return input(f"{prompt} [y/N]: ").strip().lower() in {"y", "yes"}


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    with session_scope() as session:
        service = ReportConsistencyService(open_store(session))
        inactive = service.find_inactive_records()
        if not inactive:
            LOGGER.info("No inactive records found")
            return 0
        for record in inactive:
            LOGGER.info("Inactive: %s (%s yen)", record.path, record.amount)
        if not args.yes and not _confirm(f"Delete {len(inactive)} inactive records?"):
            LOGGER.info("Deletion cancelled")
            return 0
        result = service.delete_inactive_records()

    LOGGER.info(
        "Deleted %s records and pruned %s reports",
        len(result.deleted_records),
        len(result.pruned_reports),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
