"""CLI utility to compare report totals with the sum of their member records."""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from ..database import session_scope
from ..errors import ReportServiceError
from ..services.document_store import open_store
from ..services.report_consistency import ReportConsistencyService

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Resum every report from its members and report totals that drifted."
    )
    parser.add_argument(
        "--apply", action="store_true", help="Overwrite drifted totals with the resummed values."
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    failures = 0
    with session_scope() as session:
        service = ReportConsistencyService(open_store(session))
        drifted = service.check_reports()
        if not drifted:
            LOGGER.info("All report totals match their members")
            return 0
        LOGGER.warning("%s reports drifted from their members", len(drifted))
        if not args.apply:
            return 1
        for result in drifted:
            try:
                service.apply_resum(result.path)
            except ReportServiceError as exc:
                failures += 1
                LOGGER.error("Unable to correct %s: %s", result.path, exc)

    LOGGER.info("Corrected %s reports", len(drifted) - failures)
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
