#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the License Ledger Step by Step

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation      - Registry, signing, the first issuance
  4-6:   Ownership       - Transfers, lending with recall right, recall
  7-8:   Fees            - Tiered fee schedule, paying through the oracle
  9-10:  Control         - Delegated management, revocation
  11:    Audit           - Event log and conservation proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from license_ledger import (
    LicenseLedger, StaticRegistry, LedgerDefaults, StaticPriceOracle,
    FeeAccount, LedgerError,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Issuance
    supply: int = 70
    value_cents: int = 7000

    # Fees
    native_per_cent: Decimal = Decimal("2")
    oracle_minimum: int = 5
    issuance_fee: int = 500
    issuer_fee_share: int = 5000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv

ISSUER = "acme"
ROOT = "registry"


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_holdings(ledger: LicenseLedger, index: int, holders):
    for h in holders:
        print(f"  {h:<8} total={ledger.total_owned(index, h):>3}  "
              f"proper={ledger.proper_balance(index, h):>3}  "
              f"recallable={ledger.recallable_total(index, h):>3}")


# ============================================================================
# PHASE 1: FOUNDATION
# ============================================================================

def step_01_registry():
    step_header(1, "The Registry",
        "A registry creates ledgers and is the root authority of each one.")

    oracle = StaticPriceOracle(CONFIG.native_per_cent, minimum_charge=CONFIG.oracle_minimum)
    registry = StaticRegistry(ROOT, oracle, LedgerDefaults(
        fee_tier_minimums=(0, 1000, 2000),
        fee_tier_rates=(100, 500, 40),
        issuer_fee_share=CONFIG.issuer_fee_share,
        issuance_fee=CONFIG.issuance_fee,
    ), verbose=True)
    ledger = registry.create_ledger_instance(
        ISSUER, "ACME Licensing", "Liability limited to list price", 10, "ACME-CERT",
    )
    ledger.advance_time(CONFIG.start_time)

    section_header("Initial State")
    print(f"Issuer:        {ledger.issuer} ({ledger.issuer_name})")
    print(f"Root:          {ledger.root_authority}")
    print(f"Signed:        {ledger.signed}")
    print(f"Fee tiers:     {[ledger.fee_tier(i) for i in range(ledger.fee_tier_count())]}")
    print(f"Issuance fee:  {ledger.issuance_fee}")
    return ledger, oracle


def step_02_sign(ledger: LicenseLedger):
    step_header(2, "Signing",
        "Nothing can be issued until the issuer has signed the ledger.")

    try:
        ledger.issue(ISSUER, "Office Suite", "OS-2025", CONFIG.value_cents,
                     CONFIG.start_time, "Audited", CONFIG.supply, "alice",
                     payment=CONFIG.issuance_fee)
    except LedgerError as e:
        print(f"As expected: {type(e).__name__}")

    ledger.sign(ISSUER, "0x051381")
    return ledger


def step_03_issue(ledger: LicenseLedger):
    step_header(3, "First Issuance",
        "An issuance creates a batch of units owned properly by one holder.")

    index = ledger.issue(ISSUER, "Office Suite", "OS-2025", CONFIG.value_cents,
                         CONFIG.start_time, "Audited by ACME", CONFIG.supply, "alice",
                         payment=CONFIG.issuance_fee)
    print(f"\n{ledger.issuance(index)}")
    print(f"Root fee account: {ledger.fee_balance(FeeAccount.ROOT)}")
    return index


# ============================================================================
# PHASE 2: OWNERSHIP
# ============================================================================

def step_04_transfer(ledger: LicenseLedger, index: int):
    step_header(4, "Permanent Transfer",
        "Properly owned units move for good; a fee is due on their value.")

    fiat = ledger.transfer_fiat_fee(index, 20)
    print(f"Fiat fee for 20 units: {fiat} cents")
    ledger.transfer("alice", index, "bob", 20, payment=20)
    show_holdings(ledger, index, ["alice", "bob"])


def step_05_lend(ledger: LicenseLedger, index: int):
    step_header(5, "Lending",
        "A transfer with recall right keeps the lender's claim on the units.")

    ledger.transfer_with_recall_right("alice", index, "carol", 10, payment=100)
    show_holdings(ledger, index, ["alice", "carol"])

    section_header("Borrowed units cannot move on")
    try:
        ledger.transfer("carol", index, "dave", 1, payment=100)
    except LedgerError as e:
        print(f"As expected: {type(e).__name__}")


def step_06_recall(ledger: LicenseLedger, index: int):
    step_header(6, "Recall",
        "The lender pulls units back, fully or partially, without a fee.")

    ledger.recall("alice", index, "carol", 4)
    show_holdings(ledger, index, ["alice", "carol"])
    print(f"\nalice lent to: {ledger.recall_witnesses(index, 'alice')}")


# ============================================================================
# PHASE 3: FEES
# ============================================================================

def step_07_fee_schedule(ledger: LicenseLedger):
    step_header(7, "Tiered Fee Schedule",
        "The tier with the greatest minimum not above the value sets the rate.")

    for value in (0, 100, 1000, 1200, 200000):
        print(f"  fee_for({value:>6}) = {ledger.fee_tiers.fee_for(value)}")


def step_08_underpayment(ledger: LicenseLedger, index: int, oracle: StaticPriceOracle):
    step_header(8, "Paying the Fee",
        "Underpaying is rejected and leaves nothing changed.")

    before = ledger.total_owned(index, "bob")
    try:
        ledger.transfer("alice", index, "bob", 20, payment=15)
    except LedgerError as e:
        print(f"As expected: {type(e).__name__}")
    print(f"bob still holds {ledger.total_owned(index, 'bob')} (was {before})")
    print(f"Oracle calls so far: {oracle.calls}")
    print(f"Issuer account: {ledger.fee_balance(FeeAccount.ISSUER)}, "
          f"root account: {ledger.fee_balance(FeeAccount.ROOT)}")


# ============================================================================
# PHASE 4: CONTROL
# ============================================================================

def step_09_management(ledger: LicenseLedger):
    step_header(9, "Delegated Management",
        "The root authority can hand issuer control to a manager and back.")

    ledger.take_over_management(ROOT, "auditor")
    try:
        ledger.issue(ISSUER, "Extra", "X", 1, CONFIG.start_time, "", 1, "alice",
                     payment=CONFIG.issuance_fee)
    except LedgerError as e:
        print(f"Issuer blocked: {type(e).__name__}")
    ledger.take_over_management(ROOT, None)


def step_10_revoke(ledger: LicenseLedger, index: int):
    step_header(10, "Revocation",
        "A revoked issuance is frozen forever.")

    ledger.advance_time(ledger.current_time + timedelta(days=90))
    ledger.revoke(ISSUER, index, "License terms violated")
    try:
        ledger.recall("alice", index, "carol", 1)
    except LedgerError as e:
        print(f"As expected: {type(e).__name__}")
    print(f"Frozen holdings: {ledger.balances.holders(index)}")


# ============================================================================
# PHASE 5: AUDIT
# ============================================================================

def step_11_audit(ledger: LicenseLedger):
    step_header(11, "Audit Trail",
        "Every applied operation is in the event log; units are conserved.")

    for record in ledger.event_log:
        print(f"  {record}")
    result = ledger.verify_conservation()
    print(f"\nConservation valid: {result['valid']}  supplies: {result['supplies']}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       LICENSE LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    ledger, oracle = step_01_registry()
    wait_for_enter()
    step_02_sign(ledger)
    wait_for_enter()
    index = step_03_issue(ledger)
    wait_for_enter()

    step_04_transfer(ledger, index)
    wait_for_enter()
    step_05_lend(ledger, index)
    wait_for_enter()
    step_06_recall(ledger, index)
    wait_for_enter()

    step_07_fee_schedule(ledger)
    wait_for_enter()
    step_08_underpayment(ledger, index, oracle)
    wait_for_enter()

    step_09_management(ledger)
    wait_for_enter()
    step_10_revoke(ledger, index)
    wait_for_enter()

    step_11_audit(ledger)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See license_ledger/*.py for the components
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
