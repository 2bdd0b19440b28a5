"""
Periodic maintenance, meant to be run from cron:

    python -m fakedetector_accounts.maintenance

Deactivates stale login-attempt windows. With --reset-free-points it also
zeroes every free balance (monthly free-point expiry).
"""

import argparse
import logging
from typing import Callable, Dict

from sqlalchemy.orm import Session

from fakedetector_accounts.config import settings
from fakedetector_accounts.infrastructure.observability.logging import setup_logging
from fakedetector_accounts.services.point_ledger import PointLedger
from fakedetector_accounts.services.rate_limiter import SecurityRateLimiter

logger = logging.getLogger(__name__)


def run_maintenance(session_factory: Callable[[], Session], reset_free_points: bool = False) -> Dict[str, int]:
    db = session_factory()
    try:
        results = {"login_windows_deactivated": SecurityRateLimiter(db, settings=settings).cleanup_old_records()}
        if reset_free_points:
            results["free_balances_reset"] = PointLedger(db, settings).reset_free_points()
    finally:
        db.close()

    logger.info("Maintenance complete", extra=results)
    return results


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--reset-free-points", action="store_true", help="zero all free point balances")
    args = parser.parse_args()

    from fakedetector_accounts.infrastructure.database.session import SessionLocal

    setup_logging(settings.log_level)
    run_maintenance(SessionLocal, reset_free_points=args.reset_free_points)


if __name__ == "__main__":
    main()
