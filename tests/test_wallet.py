"""
Tests for the wallet decision workflow.

Covers:
1. Submission approve/reject and the single status transition
2. Withdrawal approval against the balance at decision time
3. At-most-once balance effect under duplicate and concurrent decisions
4. Rollback when the store fails
5. Wallet history entries
"""

import threading
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from cashback.errors import (
    InsufficientFundsError,
    InvalidInputError,
    NotFoundError,
    StateConflictError,
    StoreUnavailableError,
)
from cashback.intake import create_submission
from cashback.models import Profile, Submission, WalletEntry, Withdrawal
from cashback.schemas import SubmissionCreate
from cashback.wallet import (
    APPROVE,
    REJECT,
    SUBMISSION,
    WITHDRAWAL,
    decide,
    wallet_history,
)
from tests.conftest import balance_of


class TestSubmissionDecisions:
    """Approving and rejecting submissions."""

    def test_approve_credits_captured_cashback(self, db, session_factory, make_profile, make_brand, make_submission):
        """balance=100, cashback=50 -> approve -> 150 and approved."""
        user = make_profile(balance="100")
        brand = make_brand(cashback="50")
        sub = make_submission(user, brand)

        result = decide(db, SUBMISSION, sub.id, APPROVE)

        assert result.status == "approved"
        assert result.wallet_balance == Decimal("150")
        assert balance_of(session_factory, user.id) == Decimal("150")
        assert db.get(Submission, sub.id, populate_existing=True).status == "approved"

    def test_second_approve_is_state_conflict(self, db, session_factory, make_profile, make_brand, make_submission):
        """Approving twice fails and the balance stays at 150."""
        user = make_profile(balance="100")
        sub = make_submission(user, make_brand(cashback="50"))

        decide(db, SUBMISSION, sub.id, APPROVE)
        with pytest.raises(StateConflictError):
            decide(db, SUBMISSION, sub.id, APPROVE)

        assert balance_of(session_factory, user.id) == Decimal("150")

    def test_reject_leaves_balance_alone(self, db, session_factory, make_profile, make_brand, make_submission):
        user = make_profile(balance="100")
        sub = make_submission(user, make_brand(cashback="50"))

        result = decide(db, SUBMISSION, sub.id, REJECT)

        assert result.status == "rejected"
        assert balance_of(session_factory, user.id) == Decimal("100")
        assert db.query(WalletEntry).count() == 0

    def test_rejected_submission_cannot_be_approved(self, db, session_factory, make_profile, make_brand, make_submission):
        user = make_profile(balance="0")
        sub = make_submission(user, make_brand(cashback="50"))

        decide(db, SUBMISSION, sub.id, REJECT)
        with pytest.raises(StateConflictError):
            decide(db, SUBMISSION, sub.id, APPROVE)

        assert balance_of(session_factory, user.id) == Decimal("0")
        assert db.get(Submission, sub.id, populate_existing=True).status == "rejected"

    def test_credit_uses_snapshot_not_current_brand_amount(self, db, session_factory, make_profile, make_brand, make_submission):
        """Changing the brand after submission does not change the credit."""
        user = make_profile(balance="0")
        brand = make_brand(cashback="50")
        sub = make_submission(user, brand)

        brand.cashback_amount = Decimal("80")
        db.commit()

        decide(db, SUBMISSION, sub.id, APPROVE)
        assert balance_of(session_factory, user.id) == Decimal("50")

    def test_unknown_submission_is_not_found(self, db):
        with pytest.raises(NotFoundError):
            decide(db, SUBMISSION, "does-not-exist", APPROVE)

    def test_unknown_decision_is_rejected_before_any_write(self, db, make_profile, make_brand, make_submission):
        sub = make_submission(make_profile(), make_brand())
        with pytest.raises(InvalidInputError):
            decide(db, SUBMISSION, sub.id, "maybe")
        with pytest.raises(InvalidInputError):
            decide(db, "refund", sub.id, APPROVE)
        assert db.get(Submission, sub.id, populate_existing=True).status == "pending"

    def test_notification_carries_brand_and_amount(self, db, make_profile, make_brand, make_submission):
        user = make_profile(balance="0", email="creator@example.com")
        sub = make_submission(user, make_brand(name="Glow", cashback="25"))

        result = decide(db, SUBMISSION, sub.id, APPROVE)

        assert result.notification.to_payload() == {
            "email": "creator@example.com",
            "status": "approved",
            "brandName": "Glow",
            "cashbackAmount": 25.0,
        }

    def test_reject_notification_has_no_amount(self, db, make_profile, make_brand, make_submission):
        sub = make_submission(make_profile(), make_brand(name="Glow"))
        payload = decide(db, SUBMISSION, sub.id, REJECT).notification.to_payload()
        assert payload["status"] == "rejected"
        assert "cashbackAmount" not in payload


class TestWithdrawalDecisions:
    """Approving and rejecting withdrawals."""

    def test_approve_debits_amount(self, db, session_factory, make_profile, make_withdrawal):
        user = make_profile(balance="100")
        w = make_withdrawal(user, "30")

        result = decide(db, WITHDRAWAL, w.id, APPROVE)

        assert result.status == "approved"
        assert balance_of(session_factory, user.id) == Decimal("70")
        entry = db.query(WalletEntry).filter_by(item_kind=WITHDRAWAL, item_id=w.id).one()
        assert entry.amount == Decimal("-30")
        assert entry.balance_after == Decimal("70")

    def test_balance_dropped_below_amount_is_insufficient(self, db, session_factory, make_profile, make_withdrawal):
        """A 30 request made while affordable fails once another approval leaves 15."""
        user = make_profile(balance="35")
        big = make_withdrawal(user, "30")
        first = make_withdrawal(user, "20")

        decide(db, WITHDRAWAL, first.id, APPROVE)
        assert balance_of(session_factory, user.id) == Decimal("15")

        with pytest.raises(InsufficientFundsError):
            decide(db, WITHDRAWAL, big.id, APPROVE)

        assert balance_of(session_factory, user.id) == Decimal("15")
        assert db.get(Withdrawal, big.id, populate_existing=True).status == "pending"

    def test_recorded_request_above_current_balance(self, db, session_factory, make_profile):
        """balance=20, a 30 request on record, balance drops to 15 -> approve -> insufficient, 15."""
        user = make_profile(balance="20")
        w = Withdrawal(user_id=user.id, amount=Decimal("30"), method="upi", upi_id="me@okaxis")
        db.add(w)
        db.commit()

        db.execute(update(Profile).where(Profile.id == user.id).values(wallet_balance=Decimal("15")))
        db.commit()

        with pytest.raises(InsufficientFundsError):
            decide(db, WITHDRAWAL, w.id, APPROVE)

        assert balance_of(session_factory, user.id) == Decimal("15")
        assert db.get(Withdrawal, w.id, populate_existing=True).status == "pending"
        assert db.query(WalletEntry).count() == 0

    def test_insufficient_withdrawal_can_still_be_rejected(self, db, session_factory, make_profile, make_withdrawal):
        user = make_profile(balance="40")
        big = make_withdrawal(user, "40")
        small = make_withdrawal(user, "10")
        decide(db, WITHDRAWAL, small.id, APPROVE)

        with pytest.raises(InsufficientFundsError):
            decide(db, WITHDRAWAL, big.id, APPROVE)
        result = decide(db, WITHDRAWAL, big.id, REJECT)

        assert result.status == "rejected"
        assert balance_of(session_factory, user.id) == Decimal("30")

    def test_withdrawal_notification(self, db, make_profile, make_withdrawal):
        user = make_profile(balance="50", email="payee@example.com")
        w = make_withdrawal(user, "12.50")

        payload = decide(db, WITHDRAWAL, w.id, APPROVE).notification.to_payload()

        assert payload == {
            "email": "payee@example.com",
            "status": "approved",
            "brandName": "Withdrawal",
            "cashbackAmount": 12.5,
        }

    def test_decided_withdrawal_is_state_conflict(self, db, session_factory, make_profile, make_withdrawal):
        user = make_profile(balance="100")
        w = make_withdrawal(user, "10")
        decide(db, WITHDRAWAL, w.id, APPROVE)

        with pytest.raises(StateConflictError):
            decide(db, WITHDRAWAL, w.id, REJECT)
        assert balance_of(session_factory, user.id) == Decimal("90")


class TestConcurrentDecisions:
    """Duplicate decisions racing on the same item."""

    def test_two_concurrent_approvals_credit_once(self, session_factory, make_profile, make_brand, make_submission):
        user = make_profile(balance="100")
        sub = make_submission(user, make_brand(cashback="50"))

        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def approve():
            session = session_factory()
            try:
                barrier.wait()
                decide(session, SUBMISSION, sub.id, APPROVE)
                outcome = "ok"
            except StateConflictError:
                outcome = "conflict"
            finally:
                session.close()
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=approve) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(outcomes) == ["conflict", "ok"]
        assert balance_of(session_factory, user.id) == Decimal("150")

        session = session_factory()
        try:
            assert session.query(WalletEntry).filter_by(item_id=sub.id).count() == 1
        finally:
            session.close()

    def test_concurrent_withdrawals_cannot_overdraw(self, session_factory, make_profile, make_withdrawal):
        """Two 40 requests against a balance of 50: one pays out, the other is refused."""
        user = make_profile(balance="50")
        first = make_withdrawal(user, "40")
        second = make_withdrawal(user, "40")

        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def approve(withdrawal_id):
            session = session_factory()
            try:
                barrier.wait()
                decide(session, WITHDRAWAL, withdrawal_id, APPROVE)
                outcome = "ok"
            except InsufficientFundsError:
                outcome = "insufficient"
            finally:
                session.close()
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=approve, args=(w.id,)) for w in (first, second)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(outcomes) == ["insufficient", "ok"]
        assert balance_of(session_factory, user.id) == Decimal("10")

        session = session_factory()
        try:
            statuses = sorted(session.get(Withdrawal, w.id).status for w in (first, second))
            assert statuses == ["approved", "pending"]
            assert session.query(WalletEntry).filter_by(user_id=user.id).count() == 1
        finally:
            session.close()

    def test_existing_ledger_entry_blocks_second_credit(self, db, session_factory, make_profile, make_brand, make_submission):
        """A leftover effect for the item makes the decision roll back whole."""
        user = make_profile(balance="0")
        sub = make_submission(user, make_brand(cashback="50"))
        db.add(WalletEntry(user_id=user.id, item_kind=SUBMISSION, item_id=sub.id,
                           amount=Decimal("50"), balance_after=Decimal("50")))
        db.commit()

        with pytest.raises(StateConflictError):
            decide(db, SUBMISSION, sub.id, APPROVE)

        assert balance_of(session_factory, user.id) == Decimal("0")
        assert db.get(Submission, sub.id, populate_existing=True).status == "pending"


def _store_down(*args, **kwargs):
    raise OperationalError("COMMIT", {}, Exception("database is locked"))


class TestStoreFailures:
    """A failed store call commits nothing and surfaces as StoreUnavailableError."""

    def test_failed_commit_rolls_back_decision(self, db, session_factory, make_profile, make_brand, make_submission):
        user = make_profile(balance="100")
        sub = make_submission(user, make_brand(cashback="50"))

        with patch.object(db, "commit", side_effect=_store_down):
            with pytest.raises(StoreUnavailableError):
                decide(db, SUBMISSION, sub.id, APPROVE)

        assert balance_of(session_factory, user.id) == Decimal("100")
        assert db.get(Submission, sub.id, populate_existing=True).status == "pending"
        assert db.query(WalletEntry).count() == 0

        # safe to retry once the store is back
        assert decide(db, SUBMISSION, sub.id, APPROVE).wallet_balance == Decimal("150")

    def test_failed_insert_is_not_saved(self, db, make_profile, make_brand):
        user = make_profile()
        brand = make_brand()

        with patch.object(db, "commit", side_effect=_store_down):
            with pytest.raises(StoreUnavailableError):
                create_submission(db, user, SubmissionCreate(
                    brand_id=brand.id, platform="instagram", content_url="https://instagram.com/p/abc",
                ))

        assert db.query(Submission).count() == 0


class TestWalletHistory:

    def test_history_lists_each_effect(self, db, make_profile, make_brand, make_submission, make_withdrawal):
        user = make_profile(balance="0")
        brand = make_brand(cashback="40")
        s1 = make_submission(user, brand)
        s2 = make_submission(user, brand, url="https://instagram.com/p/second")
        decide(db, SUBMISSION, s1.id, APPROVE)
        decide(db, SUBMISSION, s2.id, REJECT)
        w = make_withdrawal(user, "15")
        decide(db, WITHDRAWAL, w.id, APPROVE)

        entries = wallet_history(db, user.id)

        assert {(e.item_kind, e.item_id, e.amount) for e in entries} == {
            (SUBMISSION, s1.id, Decimal("40")),
            (WITHDRAWAL, w.id, Decimal("-15")),
        }

    def test_history_is_per_user(self, db, make_profile, make_brand, make_submission):
        alice, bob = make_profile(), make_profile()
        sub = make_submission(alice, make_brand())
        decide(db, SUBMISSION, sub.id, APPROVE)

        assert wallet_history(db, bob.id) == []
        assert len(wallet_history(db, alice.id)) == 1
