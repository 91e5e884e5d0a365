"""
license_ledger - License Unit Ledger

Tracks ownership of license units issued in batches by a single issuer.
Holders transfer units permanently or with a recall right; transfers pay a
tiered fee converted to native units through a price oracle.

Usage:
    from decimal import Decimal
    from datetime import datetime
    from license_ledger import LicenseLedger, StaticPriceOracle

    ledger = LicenseLedger("issuer", "root", StaticPriceOracle(Decimal("2")))
    ledger.sign("issuer", "0x051381")
    idx = ledger.issue("issuer", "Office Suite", "OS-1", 7000,
                       datetime(2025, 1, 1), "Audited", 70, "alice")

    # Permanent transfer
    ledger.transfer("alice", idx, "bob", 20)

    # Lend with recall right, then pull back
    ledger.transfer_with_recall_right("alice", idx, "carol", 10)
    ledger.recall("alice", idx, "carol", 10)
"""

# Core types
from .core import (
    LedgerView,
    IssuanceSnapshot,
    FeeAccount,
    Identity,
    LedgerError,
    Unauthorized,
    InvalidState,
    IssuanceRevoked,
    AlreadyRevoked,
    InsufficientBalance,
    InsufficientFee,
    InvalidArgument,
    IssuanceNotFound,
    CollaboratorFailure,
    BASIS_POINTS,
    NULL_OWNER,
    UINT64_MAX,
    UINT16_MAX,
)

# Events
from .events import (
    Issued,
    Transferred,
    Recalled,
    Revoked,
    Signed,
    Disabled,
    ManagementTakenOver,
    FeeRateChanged,
    TransferFeeTiersChanged,
    IssuerFeeShareChanged,
    Withdrawn,
    LedgerEvent,
    EventRecord,
    EventLog,
)

# Components
from .fee_tiers import FeeTierTable
from .price_oracle import (
    PriceOracle,
    PriceOracleError,
    StaticPriceOracle,
    PriceConversionGateway,
    FeeSettlement,
)
from .access_control import Role, Operation, AccessControl
from .issuances import Issuance, IssuanceStore
from .balances import BalanceLedger

# Facade
from .ledger import LicenseLedger

# Registry
from .registry import Registry, LedgerDefaults, StaticRegistry


__all__ = [
    # Core
    'LedgerView', 'IssuanceSnapshot', 'FeeAccount', 'Identity',
    'LedgerError', 'Unauthorized', 'InvalidState', 'IssuanceRevoked', 'AlreadyRevoked',
    'InsufficientBalance', 'InsufficientFee', 'InvalidArgument', 'IssuanceNotFound',
    'CollaboratorFailure',
    'BASIS_POINTS', 'NULL_OWNER', 'UINT64_MAX', 'UINT16_MAX',
    # Events
    'Issued', 'Transferred', 'Recalled', 'Revoked', 'Signed', 'Disabled',
    'ManagementTakenOver', 'FeeRateChanged', 'TransferFeeTiersChanged',
    'IssuerFeeShareChanged', 'Withdrawn', 'LedgerEvent', 'EventRecord', 'EventLog',
    # Components
    'FeeTierTable',
    'PriceOracle', 'PriceOracleError', 'StaticPriceOracle', 'PriceConversionGateway', 'FeeSettlement',
    'Role', 'Operation', 'AccessControl',
    'Issuance', 'IssuanceStore',
    'BalanceLedger',
    # Facade
    'LicenseLedger',
    # Registry
    'Registry', 'LedgerDefaults', 'StaticRegistry',
]
