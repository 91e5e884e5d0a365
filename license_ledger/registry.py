"""
registry.py - Creation of ledger instances with registry-supplied defaults

A registry is the authority that creates license ledgers for issuers. It is
the root authority of every ledger it creates and hands each one the current
default fee configuration and its price oracle.

Classes:
- Registry: Protocol defining the creation interface
- LedgerDefaults: Frozen bundle of default fee settings
- StaticRegistry: Registry with fixed defaults, recording every ledger it creates
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import List, Protocol, Tuple, runtime_checkable

from .core import (
    BASIS_POINTS, DEFAULT_ISSUANCE_FEE, DEFAULT_ISSUER_FEE_SHARE,
    Identity, require_identity, require_uint,
)
from .fee_tiers import FeeTierTable
from .ledger import LicenseLedger
from .price_oracle import PriceOracle


@runtime_checkable
class Registry(Protocol):
    """Protocol for services that create license ledgers."""

    def create_ledger_instance(
        self,
        issuer: Identity,
        name: str,
        liability: str,
        audit_retention_years: int,
        credential: str,
    ) -> LicenseLedger:
        """Create a ledger for issuer with the registry's current defaults."""
        ...


@dataclass(frozen=True, slots=True)
class LedgerDefaults:
    """
    Fee configuration copied into every new ledger.

    Attributes:
        fee_tier_minimums: Ascending tier thresholds (fiat minor units).
        fee_tier_rates: Tier rates in basis points.
        issuer_fee_share: Basis points of retained transfer fees credited to the issuer.
        issuance_fee: Native units charged per issuance.
        allow_overpayment: Whether payments above the required fee are accepted.
    """
    fee_tier_minimums: Tuple[int, ...] = ()
    fee_tier_rates: Tuple[int, ...] = ()
    issuer_fee_share: int = DEFAULT_ISSUER_FEE_SHARE
    issuance_fee: int = DEFAULT_ISSUANCE_FEE
    allow_overpayment: bool = True

    def __post_init__(self):
        # Validates the tier table eagerly
        FeeTierTable(self.fee_tier_minimums, self.fee_tier_rates)
        require_uint(self.issuer_fee_share, "issuer_fee_share", BASIS_POINTS)
        require_uint(self.issuance_fee, "issuance_fee")

    def fee_tiers(self) -> FeeTierTable:
        return FeeTierTable(self.fee_tier_minimums, self.fee_tier_rates)


class StaticRegistry:
    """
    Registry with fixed defaults.

    Example:
        registry = StaticRegistry("root", StaticPriceOracle(Decimal("2")),
                                  LedgerDefaults((0, 1000), (100, 500)))
        ledger = registry.create_ledger_instance("issuer", "ACME", "", 10, "")
    """

    def __init__(
        self,
        root_authority: Identity,
        oracle: PriceOracle,
        defaults: LedgerDefaults = LedgerDefaults(),
        verbose: bool = False,
    ):
        self.root_authority = require_identity(root_authority, "root_authority")
        self.oracle = oracle
        self.defaults = defaults
        self.verbose = verbose
        self.ledgers: List[LicenseLedger] = []

    def update_defaults(self, **changes) -> LedgerDefaults:
        """
        Replace some defaults. Ledgers already created keep their settings.

        Raises:
            InvalidArgument: If the resulting defaults are invalid.
        """
        self.defaults = replace(self.defaults, **changes)
        return self.defaults

    def create_ledger_instance(
        self,
        issuer: Identity,
        name: str,
        liability: str,
        audit_retention_years: int,
        credential: str,
    ) -> LicenseLedger:
        ledger = LicenseLedger(
            issuer=issuer,
            root_authority=self.root_authority,
            oracle=self.oracle,
            issuer_name=name,
            liability=liability,
            safekeeping_period=audit_retention_years,
            issuer_certificate=credential,
            issuance_fee=self.defaults.issuance_fee,
            issuer_fee_share=self.defaults.issuer_fee_share,
            fee_tiers=self.defaults.fee_tiers(),
            allow_overpayment=self.defaults.allow_overpayment,
            verbose=self.verbose,
        )
        self.ledgers.append(ledger)
        return ledger

    def __repr__(self):
        return f"StaticRegistry(root={self.root_authority}, ledgers={len(self.ledgers)})"
