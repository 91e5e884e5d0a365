"""
access_control.py - Role resolution and permission decisions

The ledger has three roles:
    ISSUER          fixed at creation; issues, revokes and disables while no
                    manager is set
    ROOT_AUTHORITY  fixed at creation; configures fees, withdraws retained
                    fees and delegates management
    MANAGER         optional, set by the root authority; takes over revoke and
                    disable and blocks issuing

and two one-way lifecycle flags, signed and disabled.

resolve_role() maps a caller to a Role flag (a caller can hold several
roles). authorize() checks one Operation against the permission table and
raises Unauthorized or InvalidState. The mutators (sign, disable,
take_over_management) assume authorize() has already passed.
"""

from __future__ import annotations
from enum import Enum, Flag, auto
from typing import Optional

from .core import Identity, InvalidState, Unauthorized, require_identity


class Role(Flag):
    NONE = 0
    ISSUER = auto()
    ROOT_AUTHORITY = auto()
    MANAGER = auto()


class Operation(Enum):
    SIGN = "sign"
    ISSUE = "issue"
    REVOKE = "revoke"
    DISABLE = "disable"
    SET_ISSUANCE_FEE_RATE = "set_issuance_fee_rate"
    SET_TRANSFER_FEE_TIERS = "set_transfer_fee_tiers"
    SET_ISSUER_FEE_SHARE = "set_issuer_fee_share"
    WITHDRAW = "withdraw"
    TAKE_OVER_MANAGEMENT = "take_over_management"
    TRANSFER = "transfer"
    TRANSFER_WITH_RECALL_RIGHT = "transfer_with_recall_right"
    RECALL = "recall"


# Operations reserved to the root authority.
ROOT_OPERATIONS = frozenset({
    Operation.SET_ISSUANCE_FEE_RATE,
    Operation.SET_TRANSFER_FEE_TIERS,
    Operation.SET_ISSUER_FEE_SHARE,
    Operation.WITHDRAW,
    Operation.TAKE_OVER_MANAGEMENT,
})

# Operations open to any caller; the balance ledger does the checking.
HOLDER_OPERATIONS = frozenset({
    Operation.TRANSFER,
    Operation.TRANSFER_WITH_RECALL_RIGHT,
    Operation.RECALL,
})


class AccessControl:
    """
    Explicit state machine over (manager, signed, disabled).

    Thread Safety:
        Not thread-safe; owned by a single LicenseLedger.
    """

    def __init__(self, issuer: Identity, root_authority: Identity):
        self.issuer = require_identity(issuer, "issuer")
        self.root_authority = require_identity(root_authority, "root_authority")
        self.manager: Optional[Identity] = None
        self.signed = False
        self.disabled = False

    @property
    def managed(self) -> bool:
        """True while a delegated manager holds issuer-equivalent control."""
        return self.manager is not None

    def resolve_role(self, caller: Identity) -> Role:
        role = Role.NONE
        if caller == self.issuer:
            role |= Role.ISSUER
        if caller == self.root_authority:
            role |= Role.ROOT_AUTHORITY
        if self.manager is not None and caller == self.manager:
            role |= Role.MANAGER
        return role

    def authorize(self, operation: Operation, caller: Identity) -> Role:
        """
        Check that caller may perform operation in the current state.

        Returns:
            The caller's resolved role.

        Raises:
            Unauthorized: If the caller lacks the required role.
            InvalidState: If the role is right but the lifecycle forbids it.
        """
        role = self.resolve_role(caller)

        if operation in HOLDER_OPERATIONS:
            return role

        if operation in ROOT_OPERATIONS:
            if Role.ROOT_AUTHORITY not in role:
                raise Unauthorized(f"{operation.value}: {caller} is not the root authority")
            return role

        if operation is Operation.SIGN:
            if Role.ISSUER not in role:
                raise Unauthorized(f"sign: {caller} is not the issuer")
            if self.signed:
                raise InvalidState("Ledger is already signed")
            return role

        if operation is Operation.ISSUE:
            if Role.ISSUER not in role:
                raise Unauthorized(f"issue: {caller} is not the issuer")
            if self.managed:
                raise Unauthorized(f"issue: ledger is managed by {self.manager}")
            if not self.signed:
                raise InvalidState("Ledger has not been signed")
            if self.disabled:
                raise InvalidState("Ledger is disabled")
            return role

        if operation is Operation.REVOKE:
            if Role.MANAGER in role:
                return role
            if Role.ISSUER not in role:
                raise Unauthorized(f"revoke: {caller} is neither issuer nor manager")
            if self.managed:
                raise Unauthorized(f"revoke: ledger is managed by {self.manager}")
            if self.disabled:
                raise InvalidState("Ledger is disabled")
            return role

        if operation is Operation.DISABLE:
            required = Role.MANAGER if self.managed else Role.ISSUER
            if required not in role:
                raise Unauthorized(f"disable: {caller} is not the {'manager' if self.managed else 'issuer'}")
            if self.disabled:
                raise InvalidState("Ledger is already disabled")
            return role

        raise ValueError(f"Unknown operation {operation!r}")

    def permits(self, operation: Operation, caller: Identity) -> bool:
        """Return True if authorize() would pass."""
        try:
            self.authorize(operation, caller)
        except (Unauthorized, InvalidState):
            return False
        return True

    def check_management_change(self, manager: Optional[Identity]) -> None:
        """
        Validate a take-over request.

        Raises:
            InvalidState: If management is already in the requested state.
        """
        if manager is not None:
            require_identity(manager, "manager")
        if manager == self.manager:
            if manager is None:
                raise InvalidState("Ledger is not managed")
            raise InvalidState(f"Ledger is already managed by {manager}")

    # ------------------------------------------------------------------------
    # Mutators (call after authorize)
    # ------------------------------------------------------------------------

    def sign(self) -> None:
        self.signed = True

    def disable(self) -> None:
        self.disabled = True

    def take_over_management(self, manager: Optional[Identity]) -> None:
        self.check_management_change(manager)
        self.manager = manager

    def copy(self) -> AccessControl:
        cloned = AccessControl(self.issuer, self.root_authority)
        cloned.manager = self.manager
        cloned.signed = self.signed
        cloned.disabled = self.disabled
        return cloned

    def __repr__(self):
        return (
            f"AccessControl(issuer={self.issuer}, root={self.root_authority}, "
            f"manager={self.manager}, signed={self.signed}, disabled={self.disabled})"
        )
