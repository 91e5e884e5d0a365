"""
Atomicity Conformance Tests

INVARIANT: Operations are all-or-nothing.

    ∀ operation O:
        O succeeds ⟹ all of its mutations and events are applied
        O fails ⟹ balances, caches, logs, fee accounts and the event log
                  are exactly as before

Every check (access, balance, fee) runs before the first mutation, so a
partial application is impossible by construction.
"""

import pytest
from decimal import Decimal
from hypothesis import given, settings
from hypothesis import strategies as st

from license_ledger import (
    FeeTierTable, StaticPriceOracle, PriceOracleError, LedgerError,
    Unauthorized, InvalidState, InsufficientBalance, InsufficientFee,
    InvalidArgument, IssuanceNotFound, IssuanceRevoked, CollaboratorFailure,
)
from conftest import ISSUER, ROOT, make_ledger, issue_batch, capture_state


class FlakyOracle:
    """Oracle that rejects quotes or charges while the matching flag is set."""
    minimum_charge = 0

    def __init__(self):
        self.failing = False
        self.refusing_charges = False
        self.calls = []

    def quote(self, fiat_minor_units, payment_supplied):
        if self.failing:
            raise PriceOracleError("oracle unavailable")
        return fiat_minor_units

    def charge(self, fiat_minor_units, amount):
        if self.refusing_charges:
            raise PriceOracleError("payment channel closed")
        self.calls.append((fiat_minor_units, amount))


@pytest.fixture
def busy_ledger(priced_oracle):
    """Ledger with tiers, an issuance and some lending already done."""
    ledger = make_ledger(priced_oracle, fee_tiers=FeeTierTable([0, 1000, 2000], [100, 500, 40]))
    issue_batch(ledger)
    ledger.transfer("alice", 0, "bob", 20, payment=20)
    ledger.transfer_with_recall_right("alice", 0, "carol", 10, payment=100)
    return ledger


REJECTIONS = [
    ("transfer beyond proper balance",
     lambda l: l.transfer("alice", 0, "bob", 41, payment=10_000), InsufficientBalance),
    ("borrower passes on lent units",
     lambda l: l.transfer("carol", 0, "dave", 1, payment=10_000), InsufficientBalance),
    ("transfer underpaid",
     lambda l: l.transfer("alice", 0, "bob", 20, payment=15), InsufficientFee),
    ("transfer below oracle minimum",
     lambda l: l.transfer("alice", 0, "bob", 1, payment=4), InsufficientFee),
    ("lend to self",
     lambda l: l.transfer_with_recall_right("alice", 0, "alice", 1, payment=100), InvalidArgument),
    ("lend underpaid",
     lambda l: l.transfer_with_recall_right("alice", 0, "dave", 10, payment=99), InsufficientFee),
    ("recall more than lent",
     lambda l: l.recall("alice", 0, "carol", 11), InsufficientBalance),
    ("recall by stranger",
     lambda l: l.recall("bob", 0, "carol", 1), InsufficientBalance),
    ("unknown issuance",
     lambda l: l.transfer("alice", 7, "bob", 1), IssuanceNotFound),
    ("negative amount",
     lambda l: l.transfer("alice", 0, "bob", -1), InvalidArgument),
    ("issue by stranger",
     lambda l: issue_batch_as(l, "mallory"), Unauthorized),
    ("issue to null owner",
     lambda l: l.issue(ISSUER, "d", "c", 1, None, "r", 5, "0x0"), InvalidArgument),
    ("sign twice",
     lambda l: l.sign(ISSUER, "0xff"), InvalidState),
    ("revoke by root",
     lambda l: l.revoke(ROOT, 0, "no"), Unauthorized),
    ("bad tier table",
     lambda l: l.set_transfer_fee_tiers(ROOT, [0, 5, 5], [1, 2, 3]), InvalidArgument),
    ("fee share too large",
     lambda l: l.set_issuer_fee_share(ROOT, 10_001), InvalidArgument),
    ("withdraw too much",
     lambda l: l.withdraw(ROOT, 1_000_000, "treasury"), InsufficientBalance),
    ("withdraw by issuer",
     lambda l: l.withdraw(ISSUER, 1, ISSUER), Unauthorized),
    ("withdraw to root authority",
     lambda l: l.withdraw(ROOT, 1, ROOT), InvalidArgument),
    ("restore unmanaged ledger",
     lambda l: l.take_over_management(ROOT, None), InvalidState),
]


def issue_batch_as(ledger, caller):
    return ledger.issue(caller, "d", "c", 1, None, "r", 5, "alice")


class TestRejectionsLeaveNoTrace:

    @pytest.mark.parametrize(
        "operation, error",
        [(op, err) for _, op, err in REJECTIONS],
        ids=[name for name, _, _ in REJECTIONS],
    )
    def test_rejection_is_atomic(self, busy_ledger, operation, error):
        before = capture_state(busy_ledger)
        with pytest.raises(error):
            operation(busy_ledger)
        assert capture_state(busy_ledger) == before

    def test_revoked_issuance_rejects_atomically(self, busy_ledger):
        busy_ledger.revoke(ISSUER, 0, "fraud")
        before = capture_state(busy_ledger)
        for op in (
            lambda: busy_ledger.transfer("alice", 0, "bob", 1, payment=100),
            lambda: busy_ledger.transfer_with_recall_right("alice", 0, "bob", 1, payment=100),
            lambda: busy_ledger.recall("alice", 0, "carol", 1),
        ):
            with pytest.raises(IssuanceRevoked):
                op()
        assert capture_state(busy_ledger) == before
        assert busy_ledger.gateway.forwarded_total == 16 + 100

    def test_oracle_failure_is_atomic(self):
        oracle = FlakyOracle()
        ledger = make_ledger(oracle, fee_tiers=FeeTierTable([0], [100]))
        issue_batch(ledger)
        before = capture_state(ledger)
        oracle.failing = True
        with pytest.raises(CollaboratorFailure):
            ledger.transfer("alice", 0, "bob", 10, payment=1000)
        assert capture_state(ledger) == before
        oracle.failing = False
        ledger.transfer("alice", 0, "bob", 10, payment=1000)
        assert ledger.total_owned(0, "bob") == 10

    def test_refused_charge_is_atomic(self):
        oracle = FlakyOracle()
        ledger = make_ledger(oracle, fee_tiers=FeeTierTable([0], [100]))
        issue_batch(ledger)
        before = capture_state(ledger)
        oracle.refusing_charges = True
        with pytest.raises(CollaboratorFailure):
            ledger.transfer("alice", 0, "bob", 10, payment=1000)
        with pytest.raises(CollaboratorFailure):
            ledger.transfer_with_recall_right("alice", 0, "bob", 10, payment=1000)
        assert capture_state(ledger) == before
        assert oracle.calls == []

    def test_rejected_operation_charges_nothing(self, busy_ledger):
        calls = list(busy_ledger.gateway.oracle.calls)
        for name, operation, error in REJECTIONS:
            with pytest.raises(error):
                operation(busy_ledger)
        assert busy_ledger.gateway.oracle.calls == calls


class TestAtomicityProperties:

    @given(
        st.sampled_from(["transfer", "lend", "recall"]),
        st.sampled_from(["alice", "bob", "carol", "dave"]),
        st.sampled_from(["alice", "bob", "carol", "dave"]),
        st.integers(min_value=0, max_value=80),
        st.integers(min_value=0, max_value=200),
    )
    @settings(max_examples=200, deadline=None)
    def test_success_or_no_change(self, kind, caller, other, amount, payment):
        """
        PROPERTY: A holder operation either succeeds or leaves the ledger unchanged.
        """
        ledger = make_ledger(
            StaticPriceOracle(Decimal("2"), minimum_charge=5),
            fee_tiers=FeeTierTable([0, 1000, 2000], [100, 500, 40]),
        )
        issue_batch(ledger)
        ledger.transfer("alice", 0, "bob", 20, payment=16)
        ledger.transfer_with_recall_right("alice", 0, "carol", 10, payment=100)

        before = capture_state(ledger)
        try:
            if kind == "transfer":
                ledger.transfer(caller, 0, other, amount, payment=payment)
            elif kind == "lend":
                ledger.transfer_with_recall_right(caller, 0, other, amount, payment=payment)
            else:
                ledger.recall(caller, 0, other, amount)
        except LedgerError:
            assert capture_state(ledger) == before
        else:
            assert len(ledger.event_log) == len(before["events"]) + 1
            assert ledger.verify_conservation()['valid']
