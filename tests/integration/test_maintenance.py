"""Integration tests for the periodic maintenance job"""

from fakedetector_accounts.domain.models import PlanTier
from fakedetector_accounts.infrastructure.database.models import AccountLedger, LoginAttempt
from fakedetector_accounts.maintenance import run_maintenance
from fakedetector_accounts.services.rate_limiter import SecurityRateLimiter


def test_maintenance_sweeps_stale_windows(db, session_factory, outbox, test_settings, clock):
    # clock is pinned in the past, so this window is long idle
    SecurityRateLimiter(db, notifier=outbox, settings=test_settings, clock=clock).record_failed_login("old@example.com")

    results = run_maintenance(session_factory)

    assert results == {"login_windows_deactivated": 1}
    db.expire_all()
    assert db.query(LoginAttempt).one().is_active is False


def test_maintenance_resets_free_points_on_request(db, session_factory, make_account):
    user_id = make_account("free@example.com", PlanTier.FREE, free=3, basic=2)

    results = run_maintenance(session_factory, reset_free_points=True)

    assert results["free_balances_reset"] == 1
    db.expire_all()
    ledger = db.query(AccountLedger).filter(AccountLedger.user_id == user_id).one()
    assert ledger.free_points == 0
    assert ledger.basic_points == 2
    assert ledger.aggregate_balance == 2
