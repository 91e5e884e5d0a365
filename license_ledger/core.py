"""
Core types and pure helpers for the license ledger.

This module provides the shared vocabulary used by every other module:
1. Constants: integer ranges, basis points, sentinel identities
2. Type aliases: Identity, BalanceMatrix
3. Exceptions: LedgerError and the error kinds raised by ledger operations
4. Immutable data structures: IssuanceSnapshot
5. Protocols: LedgerView for read-only ledger access
6. Validation helpers for unsigned integer arguments

Nothing in this module mutates ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Protocol, Tuple, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Fee rates are expressed in basis points (1/100 of a percent).
BASIS_POINTS = 10_000

# Integer ranges for stored quantities.
UINT64_MAX = 2 ** 64 - 1
UINT16_MAX = 2 ** 16 - 1

# Source identity recorded on the Transferred event emitted at issuance.
NULL_OWNER = "0x0"

# Defaults used when no registry supplies values.
DEFAULT_ISSUANCE_FEE = 0
DEFAULT_ISSUER_FEE_SHARE = 0
DEFAULT_SAFEKEEPING_PERIOD = 10


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Opaque identity of an account (issuer, holder, root authority, manager).
Identity = str

# balance[holder][recall_right] -> amount, sparse.
BalanceMatrix = Dict[Identity, Dict[Identity, int]]


# ============================================================================
# ENUMS
# ============================================================================

class FeeAccount(Enum):
    """
    Bucket holding retained fees until the root authority withdraws them.

    ISSUER: the issuer's share of retained transfer fees.
    ROOT: the root authority's share, plus all issuance fees.
    """
    ISSUER = "issuer"
    ROOT = "root"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class Unauthorized(LedgerError):
    """Raised when the caller does not hold the role an operation requires."""
    pass


class InvalidState(LedgerError):
    """Raised when the ledger or an issuance is in the wrong lifecycle state."""
    pass


class IssuanceRevoked(InvalidState):
    """Raised when moving units of an issuance that has been revoked."""
    pass


class AlreadyRevoked(InvalidState):
    """Raised when revoking an issuance a second time."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when a holder does not own enough units for a move or withdrawal."""
    pass


class InsufficientFee(LedgerError):
    """Raised when the supplied payment is below the computed requirement."""
    pass


class InvalidArgument(LedgerError, ValueError):
    """Raised for malformed input such as a bad fee-tier table or negative amount."""
    pass


class IssuanceNotFound(InvalidArgument):
    """Raised when an issuance index does not exist."""
    pass


class CollaboratorFailure(LedgerError):
    """Raised when the price oracle rejects a conversion."""
    pass


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def require_uint(value: int, name: str, maximum: int = UINT64_MAX) -> int:
    """
    Validate that value is an integer in [0, maximum].

    bool is rejected even though it subclasses int.

    Raises:
        InvalidArgument: If value is not an int or is out of range.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > maximum:
        raise InvalidArgument(f"{name} out of range [0, {maximum}]: {value}")
    return value


def require_identity(value: Identity, name: str) -> Identity:
    """Validate that an identity is a non-empty string."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{name} cannot be empty")
    return value


# ============================================================================
# SNAPSHOTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class IssuanceSnapshot:
    """
    Read-only view of one issuance's metadata at the time of the query.

    Balances are not included; query them through the ledger.

    Attributes:
        index: Permanent issuance identifier (creation order).
        description: Description of the licensed product.
        code: Product code.
        original_owner: Name of the first owner as recorded on the certificate.
        original_supply: Number of units created.
        original_value: Fiat value (minor units) of the whole batch at audit time.
        audit_time: When the batch was audited.
        audit_remark: Free-text audit note.
        revoked: Whether the issuance has been revoked.
        revocation_reason: Reason given at revocation ("" while not revoked).
    """
    index: int
    description: str
    code: str
    original_owner: str
    original_supply: int
    original_value: int
    audit_time: datetime
    audit_remark: str
    revoked: bool
    revocation_reason: str


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to license ledger state.

    Functions that only need to inspect holdings accept a LedgerView. The
    LicenseLedger implements this protocol but also exposes mutating
    operations; the protocol documents read-only intent for type checkers.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def issuance_count(self) -> int:
        """Return the number of issuances created so far."""
        ...

    def issuance(self, index: int) -> IssuanceSnapshot:
        """Return a snapshot of an issuance's metadata."""
        ...

    def total_owned(self, index: int, holder: Identity) -> int:
        """Return units held properly plus units held subject to recall."""
        ...

    def recallable_total(self, index: int, holder: Identity) -> int:
        """Return units held subject to anyone's recall right."""
        ...

    def recallable_from(self, index: int, holder: Identity, recaller: Identity) -> int:
        """Return units held by holder that recaller may pull back."""
        ...

    def relevant_issuances(self, holder: Identity) -> List[int]:
        """Return the append-only list of issuances the holder has received."""
        ...

    def fee_tier_count(self) -> int:
        """Return the number of transfer fee tiers."""
        ...

    def fee_tier(self, i: int) -> Tuple[int, int]:
        """Return (minimum_value, rate_basis_points) of tier i."""
        ...
