"""CLI utility to drop report members whose source record no longer exists."""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from ..database import session_scope
from ..services.document_store import open_store
from ..services.report_consistency import PruneResult, ReportConsistencyService

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Remove dangling record references from every report's member_ids."
    )
    parser.add_argument("--yes", action="store_true", help="Apply without asking for confirmation.")
    parser.add_argument(
        "--dry-run", action="store_true", help="Only list the references that would be removed."
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def _confirm(prompt: str) -> bool:
    return input(f"{prompt} [y/N]: ").strip().lower() in {"y", "yes"}


def _log_results(results: list[PruneResult]) -> None:
    removed = sum(len(result.removed_member_ids) for result in results)
    LOGGER.info("%s reports reference %s missing records", len(results), removed)
    for result in results:
        LOGGER.info("%s: %s", result.path, ", ".join(result.removed_member_ids))


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    with session_scope() as session:
        service = ReportConsistencyService(open_store(session))
        preview = service.prune_all(dry_run=True)
        _log_results(preview)
        if not preview:
            LOGGER.info("Every report member still exists; nothing to clean up")
            return 0
        if args.dry_run:
            return 0
        if not args.yes and not _confirm(f"Clean up {len(preview)} reports?"):
            LOGGER.info("Cleanup cancelled")
            return 0
        results = service.prune_all()

    LOGGER.info("Cleaned up %s reports", len(results))
    return 0 if len(results) == len(preview) else 1


if __name__ == "__main__":
    raise SystemExit(main())
