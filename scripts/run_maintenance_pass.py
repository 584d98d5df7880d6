#!/usr/bin/env python
"""Разовый проход проверки алармов обслуживания из командной строки.

Примеры:
  python -m scripts.run_maintenance_pass
  python -m scripts.run_maintenance_pass --workers 8 --deadline 600 --json
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys

from src.config.logging import get_logger
from src.config.settings import get_settings
from src.database.connection import engine
from src.maintenance.service import build_cron_service

logger = get_logger(__name__)


async def run_once(workers: int | None, deadline: float | None) -> dict:
    st = get_settings()
    updates = {}
    if workers is not None:
        updates['MAINTENANCE_MAX_WORKERS'] = workers
    if deadline is not None:
        updates['MAINTENANCE_RUN_DEADLINE_SECONDS'] = deadline
    service = build_cron_service(st.model_copy(update=updates) if updates else st)
    try:
        outcome = await service.trigger()
    finally:
        await engine.dispose()
    if not outcome.ran:
        return {'status': outcome.status, 'reason': outcome.reason}
    return {'status': outcome.status, **outcome.result.summary()}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run one maintenance alarm pass")
    parser.add_argument('--workers', type=int, default=None, help='Параллельность по машинам')
    parser.add_argument('--deadline', type=float, default=None, help='Дедлайн прохода, секунды')
    parser.add_argument('--json', action='store_true', help='Вывести сводку в JSON')
    args = parser.parse_args(argv)

    summary = asyncio.run(run_once(args.workers, args.deadline))
    if args.json:
        print(json.dumps(summary, ensure_ascii=False, indent=2))
    else:
        logger.info(
            f"status={summary['status']} machines={summary.get('machines_processed')} "
            f"triggered={summary.get('alarms_triggered')} errors={len(summary.get('errors', []))}"
        )
    return 0 if summary['status'] == 'success' else 1


if __name__ == '__main__':
    sys.exit(main())
