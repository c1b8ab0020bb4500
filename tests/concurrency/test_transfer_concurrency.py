"""
Concurrency tests for the transfer engine.

Each thread works in its own committing session.  On PostgreSQL the
account rows are locked with SELECT ... FOR UPDATE; on SQLite every
transaction takes the database write lock up front.  Either way the
balance check runs against the committed state of the other writer.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest

from ledger_kernel.db.engine import session_scope
from ledger_kernel.exceptions import InsufficientFundsError, TransferNotFoundError
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.transfer_service import TransferService

pytestmark = pytest.mark.concurrency


def _setup_accounts(factory, *balances):
    with session_scope(factory) as session:
        service = AccountService(session)
        return [
            service.create_account(f"C-{i}", f"Concurrent {i}", Decimal(b))
            for i, b in enumerate(balances)
        ]


def _balance(factory, account_id):
    with session_scope(factory) as session:
        return AccountService(session).get_account(account_id).current_balance


def _transfer(factory, from_id, to_id, amount):
    with session_scope(factory) as session:
        return TransferService(session).create_transfer(from_id, to_id, amount)


class TestNoDoubleSpend:
    def test_two_full_balance_transfers_exactly_one_wins(self, committed_session_factory):
        source, dest_1, dest_2 = _setup_accounts(
            committed_session_factory, "100.00", "0.00", "0.00",
        )
        barrier = Barrier(2, timeout=30)

        def attempt(destination_id):
            barrier.wait()
            try:
                _transfer(committed_session_factory, source.id, destination_id, "100.00")
                return "ok"
            except InsufficientFundsError:
                return "insufficient"

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(attempt, d.id) for d in (dest_1, dest_2)]
            results = sorted(f.result() for f in futures)

        assert results == ["insufficient", "ok"]
        assert _balance(committed_session_factory, source.id) == Decimal("0.00")
        received = (
            _balance(committed_session_factory, dest_1.id)
            + _balance(committed_session_factory, dest_2.id)
        )
        assert received == Decimal("100.00")

    def test_many_small_transfers_never_overdraw(self, committed_session_factory):
        source, dest = _setup_accounts(committed_session_factory, "50.00", "0.00")
        num_threads = 8
        barrier = Barrier(num_threads, timeout=30)

        def attempt(_):
            barrier.wait()
            try:
                _transfer(committed_session_factory, source.id, dest.id, "10.00")
                return True
            except InsufficientFundsError:
                return False

        with ThreadPoolExecutor(max_workers=num_threads) as executor:
            results = list(executor.map(attempt, range(num_threads)))

        assert results.count(True) == 5
        assert _balance(committed_session_factory, source.id) == Decimal("0.00")
        assert _balance(committed_session_factory, dest.id) == Decimal("50.00")


class TestOppositeDirections:
    def test_crossing_transfers_do_not_deadlock(self, committed_session_factory):
        """A->B and B->A at once; canonical lock order keeps both moving."""
        a, b = _setup_accounts(committed_session_factory, "100.00", "100.00")
        rounds = 10
        barrier = Barrier(2, timeout=30)

        def run(from_id, to_id):
            barrier.wait()
            for _ in range(rounds):
                _transfer(committed_session_factory, from_id, to_id, "1.00")

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [
                executor.submit(run, a.id, b.id),
                executor.submit(run, b.id, a.id),
            ]
            for f in futures:
                f.result(timeout=120)

        assert _balance(committed_session_factory, a.id) == Decimal("100.00")
        assert _balance(committed_session_factory, b.id) == Decimal("100.00")


class TestConcurrentReversal:
    def test_same_transfer_reversed_once(self, committed_session_factory):
        a, b = _setup_accounts(committed_session_factory, "100.00", "0.00")
        transfer = _transfer(committed_session_factory, a.id, b.id, "60.00")
        barrier = Barrier(2, timeout=30)

        def reverse(_):
            barrier.wait()
            try:
                with session_scope(committed_session_factory) as session:
                    TransferService(session).delete_transfer(transfer.id)
                return "ok"
            except TransferNotFoundError:
                return "not_found"

        with ThreadPoolExecutor(max_workers=2) as executor:
            results = sorted(executor.map(reverse, range(2)))

        assert results == ["not_found", "ok"]
        assert _balance(committed_session_factory, a.id) == Decimal("100.00")
        assert _balance(committed_session_factory, b.id) == Decimal("0.00")
        with session_scope(committed_session_factory) as session:
            assert TransferService(session).list_transfers() == []
