"""
Goals & Loans Service

Savings goals and loans share one record type. The difference is what
`current_amount` means:

- GOAL: amount saved so far; contributions add to it.
- LOAN: balance still owed; payments subtract from it (never below 0).
"""

import math
from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from dateutil.relativedelta import relativedelta

from finance_tracker.audit import AuditLogger
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.finance import Wallet
from finance_tracker.models.goals import (
    GoalLoan,
    GoalLoanPayment,
    GoalLoanStats,
    GoalLoanStatus,
    GoalLoanType,
    GoalLoanWithMetrics,
    PaymentType,
)
from finance_tracker.services.base import (
    InvalidOperationError,
    UserScopedService,
    apply_changes,
)
from finance_tracker.services.storage import GoalLoanStorageInterface, NotFoundError
from finance_tracker.services.wallet_service import WalletService


ZERO = Decimal("0")
DAYS_PER_MONTH = 30.44
TOGGLE_STATUSES = (GoalLoanStatus.ACTIVE, GoalLoanStatus.PAUSED)


def next_payment_date(item: GoalLoan, today: date) -> Optional[date]:
    """
    The next due date for an active item with a payment day.

    The due day is clamped to the end of short months. A due day that is
    today or already past moves to the following month.
    """
    if not item.payment_due_date or item.status != GoalLoanStatus.ACTIVE:
        return None
    candidate = today + relativedelta(day=item.payment_due_date)
    if candidate <= today:
        candidate = today + relativedelta(months=1, day=item.payment_due_date)
    return candidate


def calculate_metrics(
    item: GoalLoan,
    payments: list[GoalLoanPayment],
    today: Optional[date] = None,
    wallet: Optional[Wallet] = None,
) -> GoalLoanWithMetrics:
    """
    Progress figures for one goal or loan.

    Progress is capped at 100%. The item is on track when the amount still
    needed per remaining month does not exceed its monthly payment; items
    without a monthly payment or past their target date count as on track.
    """
    today = today or date.today()

    if item.type == GoalLoanType.GOAL:
        progress = float(item.current_amount / item.target_amount * 100)
        remaining = max(ZERO, item.target_amount - item.current_amount)
    else:
        progress = float((item.target_amount - item.current_amount) / item.target_amount * 100)
        remaining = item.current_amount

    days_remaining = max(0, (item.target_date - today).days)
    months_remaining = max(0, math.ceil(days_remaining / DAYS_PER_MONTH))

    on_track = True
    if item.monthly_payment > 0 and months_remaining > 0:
        on_track = remaining / months_remaining <= item.monthly_payment

    return GoalLoanWithMetrics(
        **item.model_dump(),
        progress_percentage=min(progress, 100.0),
        remaining_amount=remaining,
        days_remaining=days_remaining,
        months_remaining=months_remaining,
        is_on_track=on_track,
        total_paid=sum((p.amount for p in payments), ZERO),
        next_payment_date=next_payment_date(item, today),
        wallet=wallet,
    )


class GoalLoanService(UserScopedService):
    """CRUD, payments and progress metrics for goals and loans."""

    def __init__(
        self,
        storage: GoalLoanStorageInterface,
        wallet_service: WalletService,
        user_id: Optional[UUID],
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(user_id, audit_logger)
        self._storage = storage
        self._wallets = wallet_service

    async def get_goals_and_loans(
        self,
        item_type: Optional[GoalLoanType] = None,
        status: Optional[GoalLoanStatus] = None,
    ) -> list[GoalLoanWithMetrics]:
        """Active (not deleted) items, newest first, with metrics."""
        user_id = self._require_user()
        items = await self._storage.list_goal_loans(user_id, item_type=item_type, status=status)
        return [await self._with_metrics(item) for item in items]

    async def get_by_type(self, item_type: GoalLoanType) -> list[GoalLoanWithMetrics]:
        return await self.get_goals_and_loans(item_type=item_type)

    async def get_by_status(self, status: GoalLoanStatus) -> list[GoalLoanWithMetrics]:
        return await self.get_goals_and_loans(status=status)

    async def get_goal_loan(self, item_id: UUID) -> Optional[GoalLoanWithMetrics]:
        user_id = self._require_user()
        item = await self._storage.get_goal_loan(user_id, item_id)
        if item is None:
            return None
        return await self._with_metrics(item)

    async def create_goal_loan(
        self,
        title: str,
        item_type: GoalLoanType,
        target_amount: Decimal,
        target_date: date,
        current_amount: Optional[Decimal] = None,
        **fields: Any,
    ) -> GoalLoan:
        """
        Create a goal or loan.

        A loan created without a current amount starts owing its full
        target amount; a goal starts at zero.
        """
        user_id = self._require_user()
        if current_amount is None:
            current_amount = target_amount if item_type == GoalLoanType.LOAN else ZERO

        item = GoalLoan(
            user_id=user_id,
            title=title,
            type=item_type,
            target_amount=target_amount,
            current_amount=current_amount,
            target_date=target_date,
            **fields,
        )
        saved = await self._storage.save_goal_loan(item)

        self._logger.info("goal_loan_created", item_id=str(saved.id), type=saved.type.value)
        await self._audit.log(AuditEventBuilder.goal_loan_created(
            user_id=user_id,
            item_id=saved.id,
            title=saved.title,
            item_type=saved.type.value,
        ))
        return saved

    async def update_goal_loan(self, item_id: UUID, changes: dict[str, Any]) -> GoalLoan:
        item = await self._get_existing(item_id)
        return await self._storage.update_goal_loan(apply_changes(item, changes))

    async def delete_goal_loan(self, item_id: UUID) -> None:
        """Soft delete."""
        await self.update_goal_loan(item_id, {"is_active": False})
        self._logger.info("goal_loan_deleted", item_id=str(item_id))

    async def add_payment(
        self,
        item_id: UUID,
        amount: Decimal,
        payment_type: Optional[PaymentType] = None,
        payment_date: Optional[date] = None,
        source_wallet_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> GoalLoanPayment:
        """
        Record a contribution (goal) or payment (loan) and move the item's
        current amount accordingly.
        """
        user_id = self._require_user()
        item = await self._get_existing(item_id)
        if payment_type is None:
            payment_type = (
                PaymentType.CONTRIBUTION if item.type == GoalLoanType.GOAL
                else PaymentType.PAYMENT
            )

        payment = GoalLoanPayment(
            user_id=user_id,
            goal_loan_id=item_id,
            amount=amount,
            transaction_type=payment_type,
            transaction_date=payment_date or date.today(),
            source_wallet_id=source_wallet_id,
            notes=notes,
        )
        saved = await self._storage.save_payment(payment)

        if item.type == GoalLoanType.GOAL:
            item.current_amount = item.current_amount + amount
        else:
            item.current_amount = max(ZERO, item.current_amount - amount)
        updated = await self._storage.update_goal_loan(item)

        self._logger.info(
            "goal_loan_payment_recorded",
            item_id=str(item_id),
            amount=str(amount),
            current_amount=str(updated.current_amount),
        )
        await self._audit.log(AuditEventBuilder.goal_loan_payment_recorded(
            user_id=user_id,
            item_id=item_id,
            amount=str(amount),
            new_current_amount=str(updated.current_amount),
        ))
        return saved

    async def get_payments(self, item_id: UUID) -> list[GoalLoanPayment]:
        user_id = self._require_user()
        return await self._storage.list_payments(user_id, item_id)

    async def get_stats(self) -> GoalLoanStats:
        items = await self.get_goals_and_loans()
        goals = [i for i in items if i.type == GoalLoanType.GOAL]
        loans = [i for i in items if i.type == GoalLoanType.LOAN]

        return GoalLoanStats(
            total_goals=len(goals),
            total_loans=len(loans),
            active_items=sum(1 for i in items if i.status == GoalLoanStatus.ACTIVE),
            completed_items=sum(1 for i in items if i.status == GoalLoanStatus.COMPLETED),
            total_goal_amount=sum((goal.target_amount for goal in goals), ZERO),
            total_loan_amount=sum((loan.target_amount for loan in loans), ZERO),
            total_saved=sum((goal.current_amount for goal in goals), ZERO),
            total_owed=sum((loan.current_amount for loan in loans), ZERO),
            monthly_payments=sum(
                (loan.monthly_payment for loan in loans if loan.status == GoalLoanStatus.ACTIVE), ZERO
            ),
            monthly_contributions=sum(
                (goal.monthly_payment for goal in goals if goal.status == GoalLoanStatus.ACTIVE), ZERO
            ),
        )

    async def complete_goal_loan(self, item_id: UUID) -> GoalLoan:
        """Mark as completed: a goal is fully funded, a loan fully repaid."""
        user_id = self._require_user()
        item = await self._get_existing(item_id)
        final_amount = item.target_amount if item.type == GoalLoanType.GOAL else ZERO
        updated = await self.update_goal_loan(item_id, {
            "status": GoalLoanStatus.COMPLETED,
            "current_amount": final_amount,
        })
        await self._audit.log(AuditEventBuilder.goal_loan_completed(
            user_id=user_id,
            item_id=item_id,
            item_type=item.type.value,
        ))
        return updated

    async def toggle_status(self, item_id: UUID, status: GoalLoanStatus) -> GoalLoan:
        """Pause or resume an item."""
        status = GoalLoanStatus(status)
        if status not in TOGGLE_STATUSES:
            raise InvalidOperationError(f"Status can only be toggled to active or paused, not {status.value}")
        return await self.update_goal_loan(item_id, {"status": status})

    async def _with_metrics(self, item: GoalLoan) -> GoalLoanWithMetrics:
        payments = await self._storage.list_payments(item.user_id, item.id)
        wallet = None
        if item.payment_source:
            wallet = await self._wallets.get_wallet(item.payment_source)
        return calculate_metrics(item, payments, wallet=wallet)

    async def _get_existing(self, item_id: UUID) -> GoalLoan:
        user_id = self._require_user()
        item = await self._storage.get_goal_loan(user_id, item_id)
        if item is None:
            raise NotFoundError("Goal/Loan not found")
        return item
