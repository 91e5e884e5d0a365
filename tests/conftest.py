"""
conftest.py - Shared pytest fixtures for license ledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Price oracles (free, priced, with minimum charge)
- Ledgers (unsigned, signed, with an issuance, with fee tiers)
- State capture for atomicity comparisons
"""

import pytest
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from license_ledger import (
    LicenseLedger, StaticPriceOracle, FeeTierTable, FeeAccount,
)


ISSUER = "issuer"
ROOT = "root"
MANAGER = "manager"
AUDIT_TIME = datetime(2024, 12, 1)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_ledger(oracle=None, signed: bool = True, **kwargs) -> LicenseLedger:
    """Create a quiet ledger with the standard issuer and root authority."""
    if oracle is None:
        oracle = StaticPriceOracle(Decimal("1"))
    kwargs.setdefault("initial_time", datetime(2025, 1, 1))
    kwargs.setdefault("verbose", False)
    ledger = LicenseLedger(ISSUER, ROOT, oracle, **kwargs)
    if signed:
        ledger.sign(ISSUER, "0x051381")
    return ledger


def issue_batch(
    ledger: LicenseLedger,
    supply: int = 70,
    owner: str = "alice",
    value: int = 7000,
    payment: int = 0,
) -> int:
    """Issue a batch and return its index."""
    return ledger.issue(
        ISSUER, "Office Suite", "OS-2025", value, AUDIT_TIME,
        "Audited by ACME", supply, owner, payment=payment,
    )


def capture_state(ledger: LicenseLedger) -> Dict[str, Any]:
    """Everything observable about a ledger, in comparable form."""
    issuances = []
    for index in range(ledger.issuance_count()):
        record = ledger.issuances.get(index)
        issuances.append({
            "snapshot": ledger.issuance(index),
            "balance": {h: dict(row) for h, row in record.balance.items()},
            "temporary_balance": dict(record.temporary_balance),
            "recall_witness_log": {o: list(log) for o, log in record.recall_witness_log.items()},
        })
    holders = set()
    for record in ledger.issuances:
        holders.update(record.balance)
    return {
        "issuances": issuances,
        "relevant": {h: ledger.relevant_issuances(h) for h in sorted(holders)},
        "fee_balances": {a: ledger.fee_balance(a) for a in FeeAccount},
        "events": list(ledger.event_log),
        "tiers": [ledger.fee_tier(i) for i in range(ledger.fee_tier_count())],
        "access": (ledger.manager, ledger.signed, ledger.disabled),
        "issuance_fee": ledger.issuance_fee,
        "issuer_fee_share": ledger.issuer_fee_share,
        "forwarded_total": ledger.gateway.forwarded_total,
        "oracle_calls": list(getattr(ledger.gateway.oracle, "calls", ())),
    }


# =============================================================================
# ORACLE FIXTURES
# =============================================================================

@pytest.fixture
def oracle():
    """One native unit per fiat minor unit, no minimum charge."""
    return StaticPriceOracle(Decimal("1"))


@pytest.fixture
def priced_oracle():
    """Two native units per fiat minor unit with a minimum charge of 5."""
    return StaticPriceOracle(Decimal("2"), minimum_charge=5)


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def unsigned_ledger(oracle):
    """Ledger that has not been signed yet."""
    return make_ledger(oracle, signed=False)


@pytest.fixture
def ledger(oracle):
    """Signed ledger with no issuances and no fee tiers."""
    return make_ledger(oracle)


@pytest.fixture
def issued_ledger(ledger):
    """Signed ledger with issuance 0: 70 units worth 7000 owned by alice."""
    issue_batch(ledger)
    return ledger


@pytest.fixture
def fee_ledger(priced_oracle):
    """
    Signed ledger with tiers [(0, 100), (1000, 500), (2000, 40)] and issuance 0
    (70 units worth 7000 owned by alice). Each unit is worth 100 fiat.
    """
    ledger = make_ledger(priced_oracle, fee_tiers=FeeTierTable([0, 1000, 2000], [100, 500, 40]))
    issue_batch(ledger)
    return ledger
