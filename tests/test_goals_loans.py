"""
Tests for goals, loans and their progress metrics.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import run
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.goals import (
    GoalLoan,
    GoalLoanPayment,
    GoalLoanStatus,
    GoalLoanType,
    PaymentType,
)
from finance_tracker.services.base import InvalidOperationError
from finance_tracker.services.goal_loan_service import calculate_metrics, next_payment_date
from finance_tracker.services.storage import NotFoundError


def item(item_type=GoalLoanType.GOAL, target="10000000", current="2500000",
         days=300, monthly="1000000", **fields):
    today = date.today()
    return GoalLoan(
        user_id=uuid4(),
        title="Test",
        type=item_type,
        target_amount=Decimal(target),
        current_amount=Decimal(current),
        start_date=fields.pop("start_date", today),
        target_date=fields.pop("target_date", today + timedelta(days=days)),
        monthly_payment=Decimal(monthly),
        **fields,
    )


class TestNextPaymentDate:

    def test_due_day_later_this_month(self):
        loan = item(GoalLoanType.LOAN, start_date=date(2025, 1, 1),
                    target_date=date(2026, 1, 1), payment_due_date=20)
        assert next_payment_date(loan, date(2025, 3, 10)) == date(2025, 3, 20)

    def test_due_day_passed_moves_to_next_month(self):
        loan = item(GoalLoanType.LOAN, start_date=date(2025, 1, 1),
                    target_date=date(2026, 1, 1), payment_due_date=5)
        assert next_payment_date(loan, date(2025, 3, 10)) == date(2025, 4, 5)
        assert next_payment_date(loan, date(2025, 3, 5)) == date(2025, 4, 5)

    def test_due_day_clamped_to_month_end(self):
        loan = item(GoalLoanType.LOAN, start_date=date(2025, 1, 1),
                    target_date=date(2026, 1, 1), payment_due_date=31)
        assert next_payment_date(loan, date(2025, 2, 10)) == date(2025, 2, 28)
        assert next_payment_date(loan, date(2025, 2, 28)) == date(2025, 3, 31)

    def test_inactive_item_has_no_next_payment(self):
        loan = item(GoalLoanType.LOAN, start_date=date(2025, 1, 1),
                    target_date=date(2026, 1, 1), status=GoalLoanStatus.PAUSED)
        assert next_payment_date(loan, date(2025, 3, 10)) is None


class TestCalculateMetrics:

    def test_goal_progress(self):
        goal = item()
        metrics = calculate_metrics(goal, [], today=date.today())
        assert metrics.progress_percentage == pytest.approx(25.0)
        assert metrics.remaining_amount == Decimal("7500000")
        assert metrics.days_remaining == 300
        assert metrics.months_remaining == 10
        assert metrics.is_on_track

    def test_goal_behind_schedule(self):
        goal = item(monthly="500000")
        assert not calculate_metrics(goal, [], today=date.today()).is_on_track

    def test_progress_capped(self):
        goal = item(target="1000", current="1500")
        metrics = calculate_metrics(goal, [], today=date.today())
        assert metrics.progress_percentage == 100.0
        assert metrics.remaining_amount == Decimal("0")

    def test_loan_progress_is_amount_repaid(self):
        loan = item(GoalLoanType.LOAN, target="12000000", current="9000000")
        metrics = calculate_metrics(loan, [], today=date.today())
        assert metrics.progress_percentage == pytest.approx(25.0)
        assert metrics.remaining_amount == Decimal("9000000")

    def test_past_target_date(self):
        goal = item(start_date=date(2024, 1, 1), target_date=date(2024, 6, 1))
        metrics = calculate_metrics(goal, [], today=date(2025, 1, 1))
        assert metrics.days_remaining == 0
        assert metrics.months_remaining == 0
        assert metrics.is_on_track

    def test_total_paid(self):
        goal = item()
        payments = [
            GoalLoanPayment(
                user_id=goal.user_id,
                goal_loan_id=goal.id,
                amount=Decimal(amount),
                transaction_type=PaymentType.CONTRIBUTION,
            )
            for amount in ("100000", "250000")
        ]
        assert calculate_metrics(goal, payments).total_paid == Decimal("350000")


class TestGoalLoanService:

    def create(self, service, item_type=GoalLoanType.GOAL, target="10000000", **fields):
        return run(service.create_goal_loan(
            title="Emergency fund" if item_type == GoalLoanType.GOAL else "Car loan",
            item_type=item_type,
            target_amount=Decimal(target),
            target_date=date.today() + timedelta(days=365),
            **fields,
        ))

    def test_starting_amounts(self, goal_loan_service, audit_storage):
        goal = self.create(goal_loan_service)
        loan = self.create(goal_loan_service, GoalLoanType.LOAN, target="50000000")
        assert goal.current_amount == Decimal("0")
        assert loan.current_amount == Decimal("50000000")
        events = run(audit_storage.get_recent_events())
        assert [e.event_type for e in events].count(AuditEventType.GOAL_LOAN_CREATED) == 2

    def test_contribution_adds_to_goal(self, goal_loan_service):
        goal = self.create(goal_loan_service)
        payment = run(goal_loan_service.add_payment(goal.id, Decimal("1500000")))
        assert payment.transaction_type == PaymentType.CONTRIBUTION
        updated = run(goal_loan_service.get_goal_loan(goal.id))
        assert updated.current_amount == Decimal("1500000")
        assert updated.total_paid == Decimal("1500000")
        assert updated.progress_percentage == pytest.approx(15.0)

    def test_payment_reduces_loan_not_below_zero(self, goal_loan_service):
        loan = self.create(goal_loan_service, GoalLoanType.LOAN, target="1000000")
        payment = run(goal_loan_service.add_payment(loan.id, Decimal("400000")))
        assert payment.transaction_type == PaymentType.PAYMENT
        run(goal_loan_service.add_payment(loan.id, Decimal("900000")))
        updated = run(goal_loan_service.get_goal_loan(loan.id))
        assert updated.current_amount == Decimal("0")
        assert len(run(goal_loan_service.get_payments(loan.id))) == 2

    def test_filters(self, goal_loan_service):
        goal = self.create(goal_loan_service)
        self.create(goal_loan_service, GoalLoanType.LOAN)
        run(goal_loan_service.toggle_status(goal.id, GoalLoanStatus.PAUSED))

        assert len(run(goal_loan_service.get_by_type(GoalLoanType.LOAN))) == 1
        paused = run(goal_loan_service.get_by_status(GoalLoanStatus.PAUSED))
        assert [i.id for i in paused] == [goal.id]

    def test_toggle_only_between_active_and_paused(self, goal_loan_service):
        goal = self.create(goal_loan_service)
        with pytest.raises(InvalidOperationError):
            run(goal_loan_service.toggle_status(goal.id, GoalLoanStatus.COMPLETED))
        resumed = run(goal_loan_service.toggle_status(goal.id, GoalLoanStatus.ACTIVE))
        assert resumed.status == GoalLoanStatus.ACTIVE

    def test_complete(self, goal_loan_service, audit_storage):
        goal = self.create(goal_loan_service)
        loan = self.create(goal_loan_service, GoalLoanType.LOAN)
        assert run(goal_loan_service.complete_goal_loan(goal.id)).current_amount == Decimal("10000000")
        completed = run(goal_loan_service.complete_goal_loan(loan.id))
        assert completed.current_amount == Decimal("0")
        assert completed.status == GoalLoanStatus.COMPLETED
        events = [e.event_type for e in run(audit_storage.get_recent_events())]
        assert AuditEventType.GOAL_LOAN_COMPLETED in events

    def test_soft_delete(self, goal_loan_service):
        goal = self.create(goal_loan_service)
        run(goal_loan_service.delete_goal_loan(goal.id))
        assert run(goal_loan_service.get_goals_and_loans()) == []

    def test_missing_item(self, goal_loan_service):
        assert run(goal_loan_service.get_goal_loan(uuid4())) is None
        with pytest.raises(NotFoundError):
            run(goal_loan_service.add_payment(uuid4(), Decimal("1")))

    def test_stats(self, goal_loan_service):
        goal = self.create(goal_loan_service, monthly_payment=Decimal("500000"))
        self.create(goal_loan_service, GoalLoanType.LOAN, target="20000000",
                    monthly_payment=Decimal("2000000"))
        run(goal_loan_service.add_payment(goal.id, Decimal("1000000")))

        stats = run(goal_loan_service.get_stats())
        assert stats.total_goals == 1
        assert stats.total_loans == 1
        assert stats.active_items == 2
        assert stats.total_saved == Decimal("1000000")
        assert stats.total_owed == Decimal("20000000")
        assert stats.monthly_payments == Decimal("2000000")
        assert stats.monthly_contributions == Decimal("500000")

    def test_payment_source_wallet_attached(self, goal_loan_service, wallet):
        goal = self.create(goal_loan_service, payment_source=wallet.id)
        assert run(goal_loan_service.get_goal_loan(goal.id)).wallet.name == "BCA"
