"""
Payment crediting pipeline: gateway webhook -> verification -> payment record + ledger credit.

Exactly one completed PaymentRecord and one ledger credit per transaction id,
however many times a gateway redelivers the same webhook. The record insert
and the credit share one transaction; the unique index on transaction_id and
the conditional pending -> completed update decide which delivery wins.
"""

import logging
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fakedetector_accounts.domain.events import (
    BankTransfer,
    ChargeFailed,
    UnhandledEvent,
    parse_gateway_event,
)
from fakedetector_accounts.domain.exceptions import GatewayUnavailableError, InvalidTierError, UnknownGatewayError
from fakedetector_accounts.domain.models import (
    AlertEvent,
    CreditingOutcome,
    CreditingStatus,
    GatewayVerification,
    PaymentStatus,
    PlanTier,
)
from fakedetector_accounts.domain.pricing import PlanPricing
from fakedetector_accounts.infrastructure.clients.gateway import GatewayClient
from fakedetector_accounts.infrastructure.database.models import PaymentRecord
from fakedetector_accounts.infrastructure.database.repositories import (
    AccountRepository,
    LedgerRepository,
    PaymentRepository,
)
from fakedetector_accounts.infrastructure.notifications.sinks import NotificationSink, safe_emit
from fakedetector_accounts.infrastructure.observability.logging import log_payment_outcome
from fakedetector_accounts.infrastructure.observability.metrics import record_credit, record_payment_event
from fakedetector_accounts.services.point_ledger import PointLedger

logger = logging.getLogger(__name__)

DEFAULT_PURCHASE_TIER = PlanTier.BASIC

# Insert/transition attempts before conceding the transaction to a concurrent delivery
WRITE_ATTEMPTS = 2


class PaymentCreditingPipeline:
    """Turns verified gateway events into durable, exactly-once ledger credits"""

    def __init__(
        self,
        db: Session,
        gateways: Mapping[str, GatewayClient],
        notifier: NotificationSink,
        pricing: PlanPricing | None = None,
        ledger: PointLedger | None = None,
    ):
        self.db = db
        self.gateways = gateways
        self.notifier = notifier
        self.pricing = pricing or PlanPricing()
        self.ledger = ledger or PointLedger(db)
        self.accounts = AccountRepository(db)
        self.ledgers = LedgerRepository(db)
        self.payments = PaymentRepository(db)

    async def handle_external_event(self, gateway_name: str, raw_payload: Any) -> CreditingOutcome:
        """
        Process one webhook delivery.

        Returns an outcome for every definitive answer (credited, duplicate,
        ignored, verification failed).

        Raises:
            UnknownGatewayError: No parser or verification client for gateway_name
            MalformedPayloadError: Payload could not be parsed
            InvalidTierError: Gateway reported a tier that cannot be purchased
            GatewayUnavailableError: Verification call failed; record left pending
        """
        event = parse_gateway_event(gateway_name, raw_payload)
        client = self.gateways.get(gateway_name)
        if client is None:
            raise UnknownGatewayError(f"No verification client for gateway: {gateway_name}")

        if isinstance(event, UnhandledEvent):
            return self._finish(
                CreditingOutcome(
                    status=CreditingStatus.IGNORED,
                    gateway=gateway_name,
                    reason=f"Unhandled event: {event.event_name}",
                )
            )

        if isinstance(event, BankTransfer) and not event.successful:
            return self._finish(
                CreditingOutcome(
                    status=CreditingStatus.IGNORED,
                    gateway=gateway_name,
                    transaction_id=event.transaction_id,
                    reason=f"Bank transfer status: {event.status or 'unknown'}",
                )
            )

        transaction_id = event.transaction_id
        existing = self.payments.get_by_transaction_id(transaction_id)
        if existing is not None and existing.status != PaymentStatus.PENDING.value:
            return self._finish(self._settled_outcome(gateway_name, existing))

        try:
            verification = await client.verify_transaction(transaction_id)
        except GatewayUnavailableError as e:
            self._leave_pending(transaction_id, gateway_name)
            record_payment_event(gateway_name, "gateway_unavailable")
            logger.warning(
                "Gateway verification unavailable",
                extra={"gateway": gateway_name, "transaction_id": transaction_id, "error": str(e)},
            )
            safe_emit(
                self.notifier,
                AlertEvent(
                    kind="payment_verification_unavailable",
                    severity="high",
                    subject_id=transaction_id,
                    details={"gateway": gateway_name, "transaction_id": transaction_id, "error": str(e)},
                ),
            )
            raise

        if not verification.verified:
            claimed_email = event.customer_email if isinstance(event, ChargeFailed) else None
            return self._fail(
                gateway_name,
                transaction_id,
                verification.error or "Payment verification failed",
                verification,
                email=verification.customer_email or claimed_email,
            )

        reported_tier = PlanTier.parse(verification.purchased_tier) if verification.purchased_tier else None
        if reported_tier is not None and not reported_tier.is_paid:
            raise InvalidTierError("Free points cannot be purchased")

        account = self.accounts.find_by_email(verification.customer_email) if verification.customer_email else None
        if account is None:
            return self._fail(gateway_name, transaction_id, "unknown account", verification)

        tier = reported_tier or self._current_paid_tier(account.id)
        points = verification.points_count or self.pricing.points_for_amount(verification.amount_minor, tier)
        if points <= 0:
            return self._fail(
                gateway_name,
                transaction_id,
                "Paid amount does not cover a single point",
                verification,
                email=verification.customer_email,
            )

        return self._credit(gateway_name, transaction_id, account.id, tier, points, verification)

    def _current_paid_tier(self, user_id: str) -> PlanTier:
        """Tier for a payment that names none: the account's paid plan, else basic"""
        current = self.ledgers.get_plan_tier(user_id)
        tier = PlanTier.parse(current) if current else DEFAULT_PURCHASE_TIER
        return tier if tier.is_paid else DEFAULT_PURCHASE_TIER

    def _credit(
        self,
        gateway_name: str,
        transaction_id: str,
        user_id: str,
        tier: PlanTier,
        points: int,
        verification: GatewayVerification,
    ) -> CreditingOutcome:
        """Write the completed record and the credit in one transaction"""
        for _ in range(WRITE_ATTEMPTS):
            record = self.payments.get_by_transaction_id(transaction_id)
            if record is not None and record.status != PaymentStatus.PENDING.value:
                return self._finish(self._settled_outcome(gateway_name, record))

            try:
                if record is None:
                    self.payments.create(
                        transaction_id=transaction_id,
                        gateway=gateway_name,
                        status=PaymentStatus.COMPLETED,
                        user_id=user_id,
                        amount_minor=verification.amount_minor,
                        currency=verification.currency,
                        points_purchased=points,
                        plan_tier_credited=tier,
                    )
                elif not self.payments.mark_completed(
                    transaction_id,
                    user_id=user_id,
                    amount_minor=verification.amount_minor,
                    currency=verification.currency,
                    points_purchased=points,
                    plan_tier_credited=tier,
                ):
                    self.db.rollback()
                    continue

                self.ledger.credit_specific_tier(user_id, tier, points, commit=False)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                continue
            except Exception:
                self.db.rollback()
                raise

            record_credit(tier.value, points, "purchase")
            return self._finish(
                CreditingOutcome(
                    status=CreditingStatus.CREDITED,
                    gateway=gateway_name,
                    transaction_id=transaction_id,
                    user_id=user_id,
                    tier=tier,
                    points=points,
                    amount_minor=verification.amount_minor,
                )
            )

        return self._finish(
            CreditingOutcome(
                status=CreditingStatus.DUPLICATE_IGNORED,
                gateway=gateway_name,
                transaction_id=transaction_id,
                reason="Transaction claimed by a concurrent delivery",
            )
        )

    def _fail(
        self,
        gateway_name: str,
        transaction_id: str,
        reason: str,
        verification: GatewayVerification,
        email: Optional[str] = None,
    ) -> CreditingOutcome:
        """Record pending/absent -> failed and notify; no ledger change"""
        account = self.accounts.find_by_email(email) if email else None
        user_id = account.id if account else None

        for _ in range(WRITE_ATTEMPTS):
            record = self.payments.get_by_transaction_id(transaction_id)
            if record is not None and record.status != PaymentStatus.PENDING.value:
                return self._finish(self._settled_outcome(gateway_name, record))
            try:
                if record is None:
                    self.payments.create(
                        transaction_id=transaction_id,
                        gateway=gateway_name,
                        status=PaymentStatus.FAILED,
                        user_id=user_id,
                        amount_minor=verification.amount_minor,
                        currency=verification.currency,
                        failure_reason=reason,
                    )
                elif not self.payments.mark_failed(
                    transaction_id, reason, user_id=user_id, amount_minor=verification.amount_minor
                ):
                    self.db.rollback()
                    continue
                self.db.commit()
                break
            except IntegrityError:
                self.db.rollback()

        safe_emit(
            self.notifier,
            AlertEvent(
                kind="payment_verification_failed",
                severity="medium",
                subject_id=user_id or transaction_id,
                details={
                    "gateway": gateway_name,
                    "transaction_id": transaction_id,
                    "user_id": user_id,
                    "reason": reason,
                    "amount_minor": verification.amount_minor,
                },
            ),
        )
        return self._finish(
            CreditingOutcome(
                status=CreditingStatus.VERIFICATION_FAILED,
                gateway=gateway_name,
                transaction_id=transaction_id,
                user_id=user_id,
                amount_minor=verification.amount_minor,
                reason=reason,
            )
        )

    def _leave_pending(self, transaction_id: str, gateway_name: str) -> None:
        """Make sure a record exists so a later redelivery can resolve it"""
        if self.payments.get_by_transaction_id(transaction_id) is not None:
            return
        try:
            self.payments.create(transaction_id=transaction_id, gateway=gateway_name, status=PaymentStatus.PENDING)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()

    @staticmethod
    def _settled_outcome(gateway_name: str, record: PaymentRecord) -> CreditingOutcome:
        if record.status == PaymentStatus.COMPLETED.value:
            return CreditingOutcome(
                status=CreditingStatus.DUPLICATE_IGNORED,
                gateway=gateway_name,
                transaction_id=record.transaction_id,
                user_id=record.user_id,
                tier=PlanTier.parse(record.plan_tier_credited) if record.plan_tier_credited else None,
                points=record.points_purchased or 0,
                amount_minor=record.amount_minor or 0,
                reason="Transaction already credited",
            )
        return CreditingOutcome(
            status=CreditingStatus.VERIFICATION_FAILED,
            gateway=gateway_name,
            transaction_id=record.transaction_id,
            user_id=record.user_id,
            reason="transaction previously failed",
        )

    @staticmethod
    def _finish(outcome: CreditingOutcome) -> CreditingOutcome:
        record_payment_event(outcome.gateway, outcome.status.value)
        log_payment_outcome(
            outcome.gateway,
            outcome.transaction_id,
            outcome.status.value,
            user_id=outcome.user_id,
            points=outcome.points,
            reason=outcome.reason,
        )
        return outcome
