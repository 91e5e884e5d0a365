"""
issuances.py - Append-only store of issuances

An Issuance is one batch of license units of a single type. Its metadata is
fixed at creation; only the revoked flag and its reason ever change, exactly
once. Balances live on the Issuance record but are mutated only by
BalanceLedger.

The store never deletes: the index of an issuance in creation order is its
permanent identifier.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .core import (
    BalanceMatrix, Identity, IssuanceSnapshot, NULL_OWNER,
    AlreadyRevoked, InvalidArgument, IssuanceNotFound,
    require_identity, require_uint,
)
from .events import Issued, LedgerEvent, Revoked, Transferred


@dataclass(slots=True)
class Issuance:
    """
    Mutable issuance record.

    Attributes:
        description, code, original_owner, audit_time, audit_remark: Certificate metadata.
        original_supply: Units created; never re-derived from balances.
        original_value: Fiat value (minor units) of the whole batch; the fee basis.
        revoked: Monotonic false -> true.
        revocation_reason: Set together with revoked.
        balance: balance[holder][recall_right] -> amount. holder == recall_right
            is proper ownership; otherwise recall_right may pull the amount back.
        temporary_balance: Per-holder sum of balance[holder][r] for r != holder.
        recall_witness_log: owner -> holders the owner ever lent to. Append-only,
            may hold duplicates and stale entries.
    """
    description: str
    code: str
    original_owner: str
    original_supply: int
    original_value: int
    audit_time: datetime
    audit_remark: str
    revoked: bool = False
    revocation_reason: str = ""
    balance: BalanceMatrix = field(default_factory=dict)
    temporary_balance: Dict[Identity, int] = field(default_factory=dict)
    recall_witness_log: Dict[Identity, List[Identity]] = field(default_factory=dict)

    def snapshot(self, index: int) -> IssuanceSnapshot:
        return IssuanceSnapshot(
            index=index,
            description=self.description,
            code=self.code,
            original_owner=self.original_owner,
            original_supply=self.original_supply,
            original_value=self.original_value,
            audit_time=self.audit_time,
            audit_remark=self.audit_remark,
            revoked=self.revoked,
            revocation_reason=self.revocation_reason,
        )

    def copy(self) -> Issuance:
        """Independent copy, including balance maps and logs."""
        return Issuance(
            description=self.description,
            code=self.code,
            original_owner=self.original_owner,
            original_supply=self.original_supply,
            original_value=self.original_value,
            audit_time=self.audit_time,
            audit_remark=self.audit_remark,
            revoked=self.revoked,
            revocation_reason=self.revocation_reason,
            balance={holder: dict(row) for holder, row in self.balance.items()},
            temporary_balance=dict(self.temporary_balance),
            recall_witness_log={owner: list(log) for owner, log in self.recall_witness_log.items()},
        )


class IssuanceStore:
    """
    Ordered, append-only collection of issuances.

    Also keeps, per holder, the append-only list of issuance indices the
    holder has ever received units of. Like the recall witness log it may
    contain duplicates; callers confirm current holdings with balance queries.
    """

    def __init__(self):
        self._issuances: List[Issuance] = []
        self._relevant: Dict[Identity, List[int]] = defaultdict(list)

    def __len__(self) -> int:
        return len(self._issuances)

    def get(self, index: int) -> Issuance:
        """
        Return the live issuance record.

        Raises:
            IssuanceNotFound: If no issuance has this index.
        """
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self._issuances):
            raise IssuanceNotFound(f"Issuance {index} does not exist")
        return self._issuances[index]

    def create(
        self,
        description: str,
        code: str,
        original_value: int,
        audit_time: datetime,
        audit_remark: str,
        original_supply: int,
        initial_owner: Identity,
        original_owner: Optional[str] = None,
    ) -> Tuple[int, List[LedgerEvent]]:
        """
        Append a new issuance with the whole supply properly owned by initial_owner.

        Returns:
            (index, events) where events are Issued and the initial Transferred.
        """
        require_uint(original_supply, "original_supply")
        require_uint(original_value, "original_value")
        require_identity(initial_owner, "initial_owner")
        if initial_owner == NULL_OWNER:
            raise InvalidArgument("initial_owner cannot be the null owner")

        issuance = Issuance(
            description=description,
            code=code,
            original_owner=original_owner if original_owner is not None else initial_owner,
            original_supply=original_supply,
            original_value=original_value,
            audit_time=audit_time,
            audit_remark=audit_remark,
        )
        if original_supply:
            issuance.balance[initial_owner] = {initial_owner: original_supply}
        index = len(self._issuances)
        self._issuances.append(issuance)
        self.add_relevant(initial_owner, index)
        return index, [
            Issued(index),
            Transferred(index, NULL_OWNER, initial_owner, original_supply, False),
        ]

    def check_revoke(self, index: int) -> Issuance:
        issuance = self.get(index)
        if issuance.revoked:
            raise AlreadyRevoked(f"Issuance {index} is already revoked")
        return issuance

    def revoke(self, index: int, reason: str) -> List[LedgerEvent]:
        """
        Mark an issuance revoked. Terminal.

        Raises:
            AlreadyRevoked: If the issuance was revoked before.
        """
        issuance = self.check_revoke(index)
        issuance.revoked = True
        issuance.revocation_reason = reason
        return [Revoked(index, reason)]

    def add_relevant(self, holder: Identity, index: int) -> None:
        self._relevant[holder].append(index)

    def relevant_issuances(self, holder: Identity) -> List[int]:
        return list(self._relevant.get(holder, ()))

    def __iter__(self):
        return iter(self._issuances)

    def copy(self) -> IssuanceStore:
        cloned = IssuanceStore()
        cloned._issuances = [iss.copy() for iss in self._issuances]
        for holder, indices in self._relevant.items():
            cloned._relevant[holder] = list(indices)
        return cloned
