"""
test_license_scenarios.py - End-to-end license ledger scenarios

Tests complete flows through the public LicenseLedger surface:
- Scenario A: chain of permanent transfers
- Scenario B: lending with partial recalls
- Scenario C: tiered fee schedule
- Scenario D: fee payment threshold
- Registry-created ledger from signing to fee withdrawal
- Delegated management lifecycle
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from license_ledger import (
    LicenseLedger, StaticRegistry, LedgerDefaults, StaticPriceOracle,
    FeeTierTable, FeeAccount,
    Issued, Transferred, Recalled, Withdrawn,
    InsufficientFee, InvalidState, Unauthorized,
)
from conftest import ISSUER, ROOT, MANAGER, make_ledger, issue_batch


class TestScenarioA:
    """Issue 70 units to X, X -> Y 20, Y -> Z 15."""

    def test_transfer_chain(self, ledger):
        index = issue_batch(ledger, supply=70, owner="X")
        assert ledger.total_owned(index, "X") == 70

        ledger.transfer("X", index, "Y", 20)
        assert ledger.total_owned(index, "X") == 50
        assert ledger.total_owned(index, "Y") == 20

        ledger.transfer("Y", index, "Z", 15)
        assert ledger.total_owned(index, "Y") == 5
        assert ledger.total_owned(index, "Z") == 15

        assert ledger.events_of_type(Transferred)[1:] == [
            Transferred(index, "X", "Y", 20, False),
            Transferred(index, "Y", "Z", 15, False),
        ]


class TestScenarioB:
    """A lends 20 to B, recalls 5 twice."""

    def test_lend_and_partial_recalls(self, ledger):
        index = issue_batch(ledger, supply=70, owner="A")
        ledger.transfer_with_recall_right("A", index, "B", 20)
        ledger.recall("A", index, "B", 5)
        ledger.recall("A", index, "B", 5)

        assert ledger.total_owned(index, "A") == 60
        assert ledger.total_owned(index, "B") == 10
        assert ledger.recallable_from(index, "B", "A") == 10
        assert ledger.events_of_type(Recalled) == [
            Recalled(index, "B", "A", 5), Recalled(index, "B", "A", 5),
        ]


class TestScenarioC:
    """Tier table [(0, 100), (1000, 500), (2000, 40)]."""

    @pytest.mark.parametrize("value, fee", [
        (0, 0),
        (100, 1),
        (1000, 50),
        (1200, 60),
        (200000, 800),
    ])
    def test_fee_schedule(self, value, fee):
        table = FeeTierTable([0, 1000, 2000], [100, 500, 40])
        assert table.fee_for(value) == fee

    def test_ledger_uses_configured_tiers(self, ledger):
        ledger.set_transfer_fee_tiers(ROOT, [0, 1000, 2000], [100, 500, 40])
        # 70 units worth 70000 -> 1000 fiat per unit
        index = issue_batch(ledger, supply=70, value=70000)
        assert ledger.transfer_fiat_fee(index, 1) == 50
        assert ledger.transfer_fiat_fee(index, 2) == 8


class TestScenarioD:
    """Payment below required fails; payment equal to required succeeds."""

    def test_payment_threshold(self, fee_ledger):
        fiat_fee = fee_ledger.transfer_fiat_fee(0, 20)
        required = fee_ledger.gateway.required_payment(fiat_fee, 10_000)

        with pytest.raises(InsufficientFee):
            fee_ledger.transfer("alice", 0, "bob", 20, payment=required - 1)
        assert fee_ledger.total_owned(0, "bob") == 0

        fee_ledger.transfer("alice", 0, "bob", 20, payment=required)
        assert fee_ledger.total_owned(0, "bob") == 20


class TestRegistryLifecycle:

    def test_from_registry_to_withdrawal(self):
        oracle = StaticPriceOracle(Decimal("2"), minimum_charge=5)
        registry = StaticRegistry(ROOT, oracle, LedgerDefaults(
            fee_tier_minimums=(0, 1000, 2000),
            fee_tier_rates=(100, 500, 40),
            issuer_fee_share=5000,
            issuance_fee=500,
        ))
        ledger = registry.create_ledger_instance(
            ISSUER, "ACME Licensing", "Liability limited to list price", 10, "CERT",
        )

        with pytest.raises(InvalidState):
            issue_batch(ledger, payment=500)
        ledger.sign(ISSUER, "0x051381")

        with pytest.raises(InsufficientFee):
            issue_batch(ledger, payment=10)
        index = issue_batch(ledger, supply=70, owner="alice", value=7000, payment=500)
        assert ledger.fee_balance(FeeAccount.ROOT) == 500

        ledger.advance_time(datetime(2025, 2, 1))
        # 20 units -> fiat 2000 -> fee 8 -> 16 native; 4 overpaid
        ledger.transfer("alice", index, "bob", 20, payment=20)
        assert ledger.fee_balance(FeeAccount.ISSUER) == 2
        assert ledger.fee_balance(FeeAccount.ROOT) == 502
        assert oracle.calls == [(8, 16)]

        ledger.withdraw(ROOT, 502, "treasury")
        ledger.withdraw(ROOT, 2, ISSUER, account=FeeAccount.ISSUER)
        assert ledger.events_of_type(Withdrawn) == [
            Withdrawn(FeeAccount.ROOT, "treasury", 502),
            Withdrawn(FeeAccount.ISSUER, ISSUER, 2),
        ]
        assert ledger.fee_balance(FeeAccount.ROOT) == 0
        assert ledger.verify_conservation()['valid']


class TestManagedLifecycle:

    def test_manager_takes_over_and_hands_back(self, issued_ledger):
        issued_ledger.transfer_with_recall_right("alice", 0, "bob", 10)
        issued_ledger.take_over_management(ROOT, MANAGER)

        # Holders keep trading while the ledger is managed
        issued_ledger.recall("alice", 0, "bob", 10)
        with pytest.raises(Unauthorized):
            issue_batch(issued_ledger)

        issued_ledger.revoke(MANAGER, 0, "audit failed")
        issued_ledger.take_over_management(ROOT, None)

        index = issue_batch(issued_ledger, supply=5, owner="carol")
        issued_ledger.disable(ISSUER)
        with pytest.raises(InvalidState):
            issue_batch(issued_ledger)

        assert issued_ledger.issuance(0).revoked
        assert issued_ledger.total_owned(index, "carol") == 5
        assert len(issued_ledger.events_of_type(Issued)) == 2


class TestCloneAndReplay:

    def test_clone_diverges_independently(self, fee_ledger):
        fee_ledger.transfer_with_recall_right("alice", 0, "bob", 10, payment=100)
        cloned = fee_ledger.clone()

        cloned.recall("alice", 0, "bob", 10)
        cloned.revoke(ISSUER, 0)
        cloned.advance_time(cloned.current_time + timedelta(days=30))

        assert fee_ledger.recallable_from(0, "bob", "alice") == 10
        assert not fee_ledger.issuance(0).revoked
        assert len(cloned.event_log) == len(fee_ledger.event_log) + 2
        assert fee_ledger.current_time != cloned.current_time

    def test_event_log_since(self, issued_ledger):
        mark = len(issued_ledger.event_log)
        issued_ledger.transfer("alice", 0, "bob", 1)
        issued_ledger.transfer("alice", 0, "carol", 1)
        assert [r.event.dest for r in issued_ledger.event_log.since(mark)] == ["bob", "carol"]
