"""
Tests for PaymentService.

Covers:
- Gross+tax and simple debits
- Default payment date from the clock
- Optional funds guard and balance restore on delete
- Listing by filter
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.values import PaymentFilter
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    CreditorNotFoundError,
    InsufficientFundsError,
    PaymentNotFoundError,
    ValidationError,
)
from ledger_kernel.models.payment import PaymentStatus
from ledger_kernel.services.payment_service import PaymentService


class TestCreatePayment:
    def test_gross_with_tax_debits_net(self, payment_service, account_service, make_account, make_creditor):
        account = make_account("100.00")
        creditor = make_creditor()

        payment = payment_service.create_payment(
            account.id, creditor.id, date(2025, 10, 1),
            gross_amount="100.00", tax_rate="10.00",
        )

        assert payment.tax_amount == Decimal("10.00")
        assert payment.net_amount == Decimal("90.00")
        assert payment.amount == Decimal("90.00")
        assert payment.status == PaymentStatus.PENDING
        assert account_service.get_account(account.id).current_balance == Decimal("10.00")

    def test_simple_amount(self, payment_service, account_service, make_account, make_creditor):
        account = make_account("100.00")
        creditor = make_creditor()

        payment = payment_service.create_payment(account.id, creditor.id, amount="30.00")

        assert payment.amount == Decimal("30.00")
        assert payment.gross_amount is None
        assert account_service.get_account(account.id).current_balance == Decimal("70.00")

    def test_date_defaults_to_clock(self, payment_service, make_account, make_creditor, deterministic_clock):
        payment = payment_service.create_payment(
            make_account("10.00").id, make_creditor().id, amount="1.00",
        )
        assert payment.payment_date == deterministic_clock.today()

    def test_iso_date_string(self, payment_service, make_account, make_creditor):
        payment = payment_service.create_payment(
            make_account("10.00").id, make_creditor().id, "2025-01-31", amount="1.00",
        )
        assert payment.payment_date == date(2025, 1, 31)

    def test_bad_date(self, payment_service, make_account, make_creditor):
        with pytest.raises(ValidationError) as exc_info:
            payment_service.create_payment(
                make_account("10.00").id, make_creditor().id, "31/01/2025", amount="1.00",
            )
        assert "payment_date" in exc_info.value.field_errors

    def test_status_string(self, payment_service, make_account, make_creditor):
        payment = payment_service.create_payment(
            make_account("10.00").id, make_creditor().id, amount="1.00", status="completed",
        )
        assert payment.status == PaymentStatus.COMPLETED

    def test_unknown_status(self, payment_service, make_account, make_creditor):
        with pytest.raises(ValidationError) as exc_info:
            payment_service.create_payment(
                make_account("10.00").id, make_creditor().id, amount="1.00", status="paid",
            )
        assert "status" in exc_info.value.field_errors

    def test_overdraft_allowed_by_default(self, payment_service, account_service, make_account, make_creditor):
        account = make_account("5.00")
        payment_service.create_payment(account.id, make_creditor().id, amount="8.00")
        assert account_service.get_account(account.id).current_balance == Decimal("-3.00")

    def test_funds_guard_when_enabled(
        self, session, account_service, make_account, make_creditor, deterministic_clock,
    ):
        service = PaymentService(
            session, accounts=account_service, clock=deterministic_clock,
            enforce_sufficient_funds=True,
        )
        account = make_account("5.00")

        with pytest.raises(InsufficientFundsError):
            service.create_payment(account.id, make_creditor().id, amount="8.00")

        assert account_service.get_account(account.id).current_balance == Decimal("5.00")
        assert service.list_payments() == []

    def test_missing_account(self, payment_service, make_creditor):
        with pytest.raises(AccountNotFoundError):
            payment_service.create_payment(uuid4(), make_creditor().id, amount="1.00")

    def test_missing_creditor(self, payment_service, account_service, make_account):
        account = make_account("10.00")
        with pytest.raises(CreditorNotFoundError):
            payment_service.create_payment(account.id, uuid4(), amount="1.00")
        assert account_service.get_account(account.id).current_balance == Decimal("10.00")

    def test_logs_payment_created(self, payment_service, make_account, make_creditor, captured_logs):
        payment = payment_service.create_payment(
            make_account("10.00").id, make_creditor().id, gross_amount="10.00", tax_rate="5",
        )
        records = [r for r in captured_logs() if r["message"] == "payment_created"]
        assert records[0]["payment_id"] == str(payment.id)
        assert records[0]["mode"] == "gross_tax"


class TestDeletePayment:
    def test_balance_not_restored_by_default(
        self, payment_service, account_service, make_account, make_creditor,
    ):
        account = make_account("100.00")
        payment = payment_service.create_payment(
            account.id, make_creditor().id, gross_amount="100.00", tax_rate="10.00",
        )

        payment_service.delete_payment(payment.id)

        with pytest.raises(PaymentNotFoundError):
            payment_service.get_payment(payment.id)
        assert account_service.get_account(account.id).current_balance == Decimal("10.00")

    def test_restore_when_enabled(
        self, session, account_service, make_account, make_creditor, deterministic_clock,
    ):
        service = PaymentService(
            session, accounts=account_service, clock=deterministic_clock,
            restore_balance_on_delete=True,
        )
        account = make_account("100.00")
        payment = service.create_payment(account.id, make_creditor().id, amount="40.00")

        service.delete_payment(payment.id)

        assert account_service.get_account(account.id).current_balance == Decimal("100.00")

    def test_missing_payment(self, payment_service):
        with pytest.raises(PaymentNotFoundError):
            payment_service.delete_payment(uuid4())


class TestListPayments:
    def test_filters(self, payment_service, make_account, make_creditor):
        a = make_account("100.00")
        b = make_account("100.00")
        c1 = make_creditor()
        c2 = make_creditor()
        p1 = payment_service.create_payment(a.id, c1.id, date(2025, 1, 10), amount="1.00")
        p2 = payment_service.create_payment(a.id, c2.id, date(2025, 2, 10), amount="2.00")
        p3 = payment_service.create_payment(b.id, c1.id, date(2025, 3, 10), amount="3.00")

        def ids(**kwargs):
            return [p.id for p in payment_service.list_payments(PaymentFilter(**kwargs))]

        assert ids() == [p3.id, p2.id, p1.id]
        assert ids(account_id=a.id) == [p2.id, p1.id]
        assert ids(creditor_id=c1.id) == [p3.id, p1.id]
        assert ids(start_date=date(2025, 2, 1), end_date=date(2025, 2, 28)) == [p2.id]

    def test_to_dict(self, payment_service, make_account, make_creditor):
        payment = payment_service.create_payment(
            make_account("10.00").id, make_creditor().id, date(2025, 5, 1),
            gross_amount="10.00", tax_rate="10",
        )
        data = payment.to_dict()
        assert data["amount"] == "9.00"
        assert data["tax_rate"] == "10.00"
        assert data["payment_date"] == "2025-05-01"
        assert data["status"] == "pending"
