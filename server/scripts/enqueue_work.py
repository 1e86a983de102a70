#!/usr/bin/env python3
"""Queue a fixed-width file for import.

Creates a PENDING work status and one import line per line of the file; the
scheduler picks it up on its next tick.

    python scripts/enqueue_work.py ORDERS.2024-06-01 orders.txt
"""
import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from import_orchestrator.core.config import get_settings
from import_orchestrator.core.db import session_scope
from import_orchestrator.core.log import configure_logging
from import_orchestrator.services.work_registry import parse_work_identifier
from import_orchestrator.services.work_repository import WorkRepository

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("work_iden", help="work identifier, <fileIden>[.<suffix>]")
    parser.add_argument("path", type=Path, help="fixed-width file, one record per line")
    parser.add_argument("--encoding", default="utf-8")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    configure_logging(get_settings().log_level)
    args = parse_args(argv)

    file_iden = parse_work_identifier(args.work_iden)
    texts = args.path.read_text(encoding=args.encoding).splitlines()

    with session_scope() as session:
        repository = WorkRepository(session)
        work_status = repository.create_work_status(args.work_iden, file_iden=file_iden)
        repository.add_import_lines(work_status.id, texts)
        wst_iden = work_status.id

    logger.info(f"Queued work status {wst_iden} with {len(texts)} lines")
    return 0


if __name__ == "__main__":
    sys.exit(main())
