"""
balances.py - Proper and recallable ownership of license units

For each issuance, balance[holder][recall_right] holds the units of holder
that recall_right may pull back. When holder == recall_right the units are
properly owned and nobody can recall them.

    transfer                    balance[from][from] -> balance[to][to]
    transfer_with_recall_right  balance[from][from] -> balance[to][from]
    recall                      balance[from][to]   -> balance[to][to]

Only properly owned units can be passed on, so a borrower can neither
transfer nor lend units held subject to recall.

Two derived structures are maintained incrementally:
    temporary_balance[holder]     sum of balance[holder][r] for r != holder
    recall_witness_log[owner]     every holder the owner ever lent to
                                  (append-only, may contain stale entries)

Every mutating operation has a check_* counterpart performing the same
validation without touching state. The facade runs the checks before any
fee is settled so a balance failure never reaches the price oracle.
"""

from __future__ import annotations
from typing import Dict, List

from .core import (
    Identity, InsufficientBalance, InvalidArgument, IssuanceRevoked,
    require_identity, require_uint,
)
from .events import LedgerEvent, Recalled, Transferred
from .issuances import Issuance, IssuanceStore


def _get(issuance: Issuance, holder: Identity, recall_right: Identity) -> int:
    return issuance.balance.get(holder, {}).get(recall_right, 0)


def _add(issuance: Issuance, holder: Identity, recall_right: Identity, delta: int) -> None:
    """Apply delta to one cell, dropping cells that reach zero."""
    row = issuance.balance.setdefault(holder, {})
    new_value = row.get(recall_right, 0) + delta
    if new_value:
        row[recall_right] = new_value
    else:
        row.pop(recall_right, None)
        if not row:
            del issuance.balance[holder]


def _add_temporary(issuance: Issuance, holder: Identity, delta: int) -> None:
    new_value = issuance.temporary_balance.get(holder, 0) + delta
    if new_value:
        issuance.temporary_balance[holder] = new_value
    else:
        issuance.temporary_balance.pop(holder, None)


class BalanceLedger:
    """
    Balance mutations and queries over the issuances of an IssuanceStore.

    All mutations require the issuance not to be revoked.
    """

    def __init__(self, store: IssuanceStore):
        self.store = store

    # ========================================================================
    # VALIDATION
    # ========================================================================

    def _live(self, index: int) -> Issuance:
        issuance = self.store.get(index)
        if issuance.revoked:
            raise IssuanceRevoked(f"Issuance {index} has been revoked")
        return issuance

    @staticmethod
    def _check_parties(source: Identity, dest: Identity, amount: int) -> None:
        require_identity(source, "from")
        require_identity(dest, "to")
        require_uint(amount, "amount")

    def check_transfer(self, index: int, source: Identity, dest: Identity, amount: int) -> Issuance:
        self._check_parties(source, dest, amount)
        issuance = self._live(index)
        owned = _get(issuance, source, source)
        if owned < amount:
            raise InsufficientBalance(
                f"Issuance {index}: {source} properly owns {owned}, cannot transfer {amount}"
            )
        return issuance

    def check_transfer_with_recall_right(
        self, index: int, source: Identity, dest: Identity, amount: int
    ) -> Issuance:
        self._check_parties(source, dest, amount)
        self._live(index)
        if source == dest:
            raise InvalidArgument("Cannot transfer with recall right to oneself")
        return self.check_transfer(index, source, dest, amount)

    def check_recall(self, index: int, source: Identity, dest: Identity, amount: int) -> Issuance:
        self._check_parties(source, dest, amount)
        issuance = self._live(index)
        if source == dest:
            raise InvalidArgument("Cannot recall from oneself")
        recallable = _get(issuance, source, dest)
        if recallable < amount:
            raise InsufficientBalance(
                f"Issuance {index}: {dest} may recall {recallable} from {source}, not {amount}"
            )
        return issuance

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def transfer(self, index: int, source: Identity, dest: Identity, amount: int) -> List[LedgerEvent]:
        """
        Move properly owned units from source to dest.

        Self-transfers and zero amounts are legal and still emit an event.

        Raises:
            IssuanceRevoked: If the issuance is revoked.
            InsufficientBalance: If source properly owns fewer than amount units.
        """
        issuance = self.check_transfer(index, source, dest, amount)
        if source != dest and amount:
            _add(issuance, source, source, -amount)
            _add(issuance, dest, dest, amount)
        self.store.add_relevant(dest, index)
        return [Transferred(index, source, dest, amount, False)]

    def transfer_with_recall_right(
        self, index: int, source: Identity, dest: Identity, amount: int
    ) -> List[LedgerEvent]:
        """
        Lend properly owned units to dest; source keeps the right to recall them.

        Raises:
            IssuanceRevoked: If the issuance is revoked.
            InvalidArgument: If source == dest.
            InsufficientBalance: If source properly owns fewer than amount units.
        """
        issuance = self.check_transfer_with_recall_right(index, source, dest, amount)
        if amount:
            _add(issuance, source, source, -amount)
            _add(issuance, dest, source, amount)
            _add_temporary(issuance, dest, amount)
        issuance.recall_witness_log.setdefault(source, []).append(dest)
        self.store.add_relevant(dest, index)
        return [Transferred(index, source, dest, amount, True)]

    def recall(self, index: int, source: Identity, dest: Identity, amount: int) -> List[LedgerEvent]:
        """
        Pull back units that dest lent to source.

        Raises:
            IssuanceRevoked: If the issuance is revoked.
            InvalidArgument: If source == dest.
            InsufficientBalance: If dest may recall fewer than amount units from source.
        """
        issuance = self.check_recall(index, source, dest, amount)
        if amount:
            _add(issuance, source, dest, -amount)
            _add_temporary(issuance, source, -amount)
            _add(issuance, dest, dest, amount)
        return [Recalled(index, source, dest, amount)]

    # ========================================================================
    # QUERIES
    # ========================================================================

    def proper_balance(self, index: int, holder: Identity) -> int:
        return _get(self.store.get(index), holder, holder)

    def total_owned(self, index: int, holder: Identity) -> int:
        issuance = self.store.get(index)
        return _get(issuance, holder, holder) + issuance.temporary_balance.get(holder, 0)

    def recallable_total(self, index: int, holder: Identity) -> int:
        return self.store.get(index).temporary_balance.get(holder, 0)

    def recallable_from(self, index: int, holder: Identity, recaller: Identity) -> int:
        """
        Raw balance[holder][recaller].

        With holder == recaller this is the proper balance, which nobody can recall.
        """
        return _get(self.store.get(index), holder, recaller)

    def recall_witnesses(self, index: int, owner: Identity) -> List[Identity]:
        """Every holder owner ever lent to, in order, duplicates included."""
        return list(self.store.get(index).recall_witness_log.get(owner, ()))

    def holders(self, index: int) -> Dict[Identity, int]:
        """Total owned per holder with a non-zero holding."""
        issuance = self.store.get(index)
        totals: Dict[Identity, int] = {}
        for holder, row in issuance.balance.items():
            totals[holder] = totals.get(holder, 0) + sum(row.values())
        return {h: q for h, q in sorted(totals.items()) if q}
