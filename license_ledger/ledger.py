"""
ledger.py - License ledger facade

The LicenseLedger is the only externally callable surface. It is the only
object that sequences mutations, ensuring controlled and auditable changes.

Every operation runs the same stages:
    1. AccessControl decides whether the caller may proceed
    2. BalanceLedger / IssuanceStore validate without mutating
    3. FeeTierTable + PriceConversionGateway quote the fee and validate
       the payment (nothing is charged yet)
    4. The oracle is charged, then state is mutated (no mutation can fail)
    5. Staged events are committed to the EventLog

Any error raised before the charge leaves no observable change: nothing has
been written, nothing has been paid, and no event has been logged.
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .access_control import AccessControl, Operation
from .balances import BalanceLedger
from .core import (
    BASIS_POINTS, DEFAULT_ISSUANCE_FEE, DEFAULT_ISSUER_FEE_SHARE,
    DEFAULT_SAFEKEEPING_PERIOD,
    FeeAccount, Identity, IssuanceSnapshot,
    InsufficientBalance, InsufficientFee, InvalidArgument, LedgerError,
    require_identity, require_uint,
)
from .events import (
    Disabled, EventLog, EventRecord, FeeRateChanged, IssuerFeeShareChanged,
    LedgerEvent, ManagementTakenOver, Signed, TransferFeeTiersChanged, Withdrawn,
)
from .fee_tiers import FeeTierTable
from .issuances import Issuance, IssuanceStore
from .price_oracle import FeeSettlement, PriceConversionGateway, PriceOracle


class LicenseLedger:
    """
    Ledger of license issuances with fee-gated transfers and role-based control.

    Implements the LedgerView protocol.

    Design Principles:
        - Always validates: every operation passes the access check and all
          balance and fee checks before anything is written.
        - Always logs: every applied operation appends its events to the log.

    Thread Safety:
        Not thread-safe. Serialize all calls on one instance.

    Example:
        ledger = LicenseLedger("issuer", "root", StaticPriceOracle(Decimal("2")))
        ledger.sign("issuer", "0x051381")
        idx = ledger.issue("issuer", "Office", "ID", 7000, t, "Remark", 70, "alice")
        ledger.transfer("alice", idx, "bob", 20, payment=100)
    """

    def __init__(
        self,
        issuer: Identity,
        root_authority: Identity,
        oracle: PriceOracle,
        issuer_name: str = "",
        liability: str = "",
        safekeeping_period: int = DEFAULT_SAFEKEEPING_PERIOD,
        issuer_certificate: str = "",
        issuance_fee: int = DEFAULT_ISSUANCE_FEE,
        issuer_fee_share: int = DEFAULT_ISSUER_FEE_SHARE,
        fee_tiers: Optional[FeeTierTable] = None,
        allow_overpayment: bool = True,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        """
        Create a ledger.

        Args:
            issuer: Identity allowed to sign, issue, revoke and disable
            root_authority: Identity that configures fees and delegates management
            oracle: Price-conversion collaborator for transfer fees
            issuer_name: Human-readable issuer name
            liability: Liability statement shown on certificates
            safekeeping_period: Years audit records are retained
            issuer_certificate: Opaque issuer credential
            issuance_fee: Native units charged per issue() call
            issuer_fee_share: Basis points of retained transfer fees credited to the issuer
            fee_tiers: Transfer fee tiers (default: empty, no fee)
            allow_overpayment: Accept payments above the required amount
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Print one line per applied or rejected operation (default: True)
        """
        self.access = AccessControl(issuer, root_authority)
        self.issuer_name = issuer_name
        self.liability = liability
        self.safekeeping_period = require_uint(safekeeping_period, "safekeeping_period")
        self.issuer_certificate = issuer_certificate
        self.signature: Optional[str] = None
        self.issuance_fee = require_uint(issuance_fee, "issuance_fee")
        self.issuer_fee_share = self._validate_share(issuer_fee_share)
        self.fee_tiers = fee_tiers.copy() if fee_tiers is not None else FeeTierTable()
        self.allow_overpayment = allow_overpayment
        self.gateway = PriceConversionGateway(oracle)
        self.issuances = IssuanceStore()
        self.balances = BalanceLedger(self.issuances)
        self.event_log = EventLog()
        self.fee_balances: Dict[FeeAccount, int] = {FeeAccount.ISSUER: 0, FeeAccount.ROOT: 0}
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    @property
    def issuer(self) -> Identity:
        return self.access.issuer

    @property
    def root_authority(self) -> Identity:
        return self.access.root_authority

    @property
    def manager(self) -> Optional[Identity]:
        return self.access.manager

    @property
    def signed(self) -> bool:
        return self.access.signed

    @property
    def disabled(self) -> bool:
        return self.access.disabled

    def issuance_count(self) -> int:
        return len(self.issuances)

    def issuance(self, index: int) -> IssuanceSnapshot:
        return self.issuances.get(index).snapshot(index)

    def total_owned(self, index: int, holder: Identity) -> int:
        return self.balances.total_owned(index, holder)

    def proper_balance(self, index: int, holder: Identity) -> int:
        return self.balances.proper_balance(index, holder)

    def recallable_total(self, index: int, holder: Identity) -> int:
        return self.balances.recallable_total(index, holder)

    def recallable_from(self, index: int, holder: Identity, recaller: Identity) -> int:
        return self.balances.recallable_from(index, holder, recaller)

    def recall_witnesses(self, index: int, owner: Identity) -> List[Identity]:
        return self.balances.recall_witnesses(index, owner)

    def relevant_issuances(self, holder: Identity) -> List[int]:
        return self.issuances.relevant_issuances(holder)

    def fee_tier_count(self) -> int:
        return self.fee_tiers.tier_count()

    def fee_tier(self, i: int) -> Tuple[int, int]:
        return self.fee_tiers.tier(i)

    def fee_balance(self, account: FeeAccount) -> int:
        """Retained native units awaiting withdrawal."""
        return self.fee_balances[account]

    def transfer_fiat_fee(self, index: int, amount: int) -> int:
        """
        Fiat fee (minor units) for moving amount units of an issuance.

        The fee basis is the issuance's original value scaled by the fraction
        of the original supply being moved, truncated.
        """
        require_uint(amount, "amount")
        issuance = self.issuances.get(index)
        return self.fee_tiers.fee_for(self._fiat_value(issuance, amount))

    def events_of_type(self, event_type) -> List[LedgerEvent]:
        return self.event_log.of_type(event_type)

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify the balance invariants of every issuance.

        Checks, per issuance:
        - conservation: sum of all balance cells equals original_supply
        - cache: temporary_balance[h] equals the sum of h's recallable cells
        - witness: every recallable cell balance[h][r] > 0 has h in
          recall_witness_log[r]

        Returns:
            Dict with keys:
            - 'valid': bool - True if all invariants hold
            - 'supplies': Dict[int, int] - Current summed supply per issuance
            - 'discrepancies': List[Dict] - Details of each violation

        Example:
            result = ledger.verify_conservation()
            assert result['valid'], f"Invariant violated: {result['discrepancies']}"
        """
        supplies: Dict[int, int] = {}
        discrepancies: List[Dict[str, Any]] = []

        for index, issuance in enumerate(self.issuances):
            total = sum(sum(row.values()) for row in issuance.balance.values())
            supplies[index] = total
            if total != issuance.original_supply:
                discrepancies.append({
                    'issuance': index,
                    'check': 'conservation',
                    'expected': issuance.original_supply,
                    'actual': total,
                })

            for holder, row in issuance.balance.items():
                recallable = sum(q for r, q in row.items() if r != holder)
                cached = issuance.temporary_balance.get(holder, 0)
                if recallable != cached:
                    discrepancies.append({
                        'issuance': index,
                        'check': 'cache',
                        'holder': holder,
                        'expected': recallable,
                        'actual': cached,
                    })
                for recall_right, quantity in row.items():
                    if recall_right == holder or quantity <= 0:
                        continue
                    if holder not in issuance.recall_witness_log.get(recall_right, ()):
                        discrepancies.append({
                            'issuance': index,
                            'check': 'witness',
                            'holder': holder,
                            'recall_right': recall_right,
                        })

            for holder, cached in issuance.temporary_balance.items():
                if holder not in issuance.balance and cached:
                    discrepancies.append({
                        'issuance': index,
                        'check': 'cache',
                        'holder': holder,
                        'expected': 0,
                        'actual': cached,
                    })

        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time only moves forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # LIFECYCLE (Mutating)
    # ========================================================================

    def sign(self, caller: Identity, signature: str) -> List[EventRecord]:
        """Record the issuer's signature. Issuing is impossible before this."""
        with self._operation("sign"):
            self.access.authorize(Operation.SIGN, caller)
            if not isinstance(signature, str) or not signature:
                raise InvalidArgument("signature cannot be empty")
            self.access.sign()
            self.signature = signature
            return self._commit("sign", [Signed(signature)])

    def disable(self, caller: Identity) -> List[EventRecord]:
        """Permanently stop issuing (and issuer revocation)."""
        with self._operation("disable"):
            self.access.authorize(Operation.DISABLE, caller)
            self.access.disable()
            return self._commit("disable", [Disabled()])

    def take_over_management(self, caller: Identity, manager: Optional[Identity]) -> List[EventRecord]:
        """
        Delegate issuer control to manager, or restore it with manager=None.

        While a manager is set the issuer can neither issue, revoke nor disable;
        the manager can revoke and disable.
        """
        with self._operation("take_over_management"):
            self.access.authorize(Operation.TAKE_OVER_MANAGEMENT, caller)
            self.access.check_management_change(manager)
            self.access.take_over_management(manager)
            return self._commit("take_over_management", [ManagementTakenOver(manager)])

    # ========================================================================
    # FEE CONFIGURATION (Mutating, root authority only)
    # ========================================================================

    def set_issuance_fee_rate(self, caller: Identity, rate: int) -> List[EventRecord]:
        """Set the native units charged per issue() call."""
        with self._operation("set_issuance_fee_rate"):
            self.access.authorize(Operation.SET_ISSUANCE_FEE_RATE, caller)
            require_uint(rate, "rate")
            self.issuance_fee = rate
            return self._commit("set_issuance_fee_rate", [FeeRateChanged(rate)])

    def set_transfer_fee_tiers(
        self, caller: Identity, minimums: Sequence[int], rates: Sequence[int]
    ) -> List[EventRecord]:
        """Replace the whole transfer fee tier table."""
        with self._operation("set_transfer_fee_tiers"):
            self.access.authorize(Operation.SET_TRANSFER_FEE_TIERS, caller)
            self.fee_tiers.set_tiers(minimums, rates)
            return self._commit("set_transfer_fee_tiers", [
                TransferFeeTiersChanged(self.fee_tiers.minimums, self.fee_tiers.rates)
            ])

    def set_issuer_fee_share(self, caller: Identity, share: int) -> List[EventRecord]:
        """Set the issuer's share of retained transfer fees, in basis points."""
        with self._operation("set_issuer_fee_share"):
            self.access.authorize(Operation.SET_ISSUER_FEE_SHARE, caller)
            self.issuer_fee_share = self._validate_share(share)
            return self._commit("set_issuer_fee_share", [IssuerFeeShareChanged(share)])

    def withdraw(
        self,
        caller: Identity,
        amount: int,
        recipient: Identity,
        account: FeeAccount = FeeAccount.ROOT,
    ) -> List[EventRecord]:
        """
        Pay out retained fees from one account.

        Raises:
            Unauthorized: If caller is not the root authority.
            InvalidArgument: If recipient is the root authority.
            InsufficientBalance: If the account holds less than amount.
        """
        with self._operation("withdraw"):
            self.access.authorize(Operation.WITHDRAW, caller)
            require_uint(amount, "amount")
            require_identity(recipient, "recipient")
            if recipient == self.access.root_authority:
                raise InvalidArgument("Cannot withdraw to the root authority itself")
            available = self.fee_balances[account]
            if available < amount:
                raise InsufficientBalance(
                    f"{account.value} fee account holds {available}, cannot withdraw {amount}"
                )
            self.fee_balances[account] = available - amount
            return self._commit("withdraw", [Withdrawn(account, recipient, amount)])

    # ========================================================================
    # ISSUANCES (Mutating)
    # ========================================================================

    def issue(
        self,
        caller: Identity,
        description: str,
        code: str,
        original_value: int,
        audit_time: datetime,
        audit_remark: str,
        original_supply: int,
        initial_owner: Identity,
        payment: int = 0,
        original_owner: Optional[str] = None,
    ) -> int:
        """
        Create an issuance owned entirely and properly by initial_owner.

        The issuance fee is paid in native units; the whole payment is retained
        in the root account.

        Returns:
            The new issuance's index.

        Raises:
            Unauthorized / InvalidState: Access or lifecycle check failed.
            InsufficientFee: If payment is below the issuance fee.
        """
        with self._operation("issue"):
            self.access.authorize(Operation.ISSUE, caller)
            require_uint(payment, "payment")
            if payment < self.issuance_fee:
                raise InsufficientFee(
                    f"Issuance fee is {self.issuance_fee}, got {payment}"
                )
            if not self.allow_overpayment and payment > self.issuance_fee:
                raise InvalidArgument(
                    f"Overpayment not accepted: issuance fee is {self.issuance_fee}, got {payment}"
                )
            index, events = self.issuances.create(
                description, code, original_value, audit_time, audit_remark,
                original_supply, initial_owner, original_owner,
            )
            self.fee_balances[FeeAccount.ROOT] += payment
            self._commit("issue", events)
            return index

    def revoke(self, caller: Identity, index: int, reason: str = "") -> List[EventRecord]:
        """
        Revoke an issuance. Terminal: its units can never move again.

        Raises:
            Unauthorized / InvalidState: Access or lifecycle check failed.
            AlreadyRevoked: If the issuance was revoked before.
        """
        with self._operation("revoke"):
            self.access.authorize(Operation.REVOKE, caller)
            events = self.issuances.revoke(index, reason)
            return self._commit("revoke", events)

    # ========================================================================
    # TRANSFERS (Mutating, any caller)
    # ========================================================================

    def transfer(
        self, caller: Identity, index: int, to: Identity, amount: int, payment: int = 0
    ) -> List[EventRecord]:
        """
        Transfer properly owned units from caller to `to`.

        Raises:
            IssuanceRevoked: If the issuance is revoked.
            InsufficientBalance: If caller properly owns fewer than amount units.
            InsufficientFee: If payment is below the required transfer fee.
            CollaboratorFailure: If the price oracle rejects the conversion.
        """
        with self._operation("transfer"):
            self.access.authorize(Operation.TRANSFER, caller)
            issuance = self.balances.check_transfer(index, caller, to, amount)
            settlement = self._settle_transfer_fee(issuance, amount, payment)
            self.gateway.forward(settlement)
            events = self.balances.transfer(index, caller, to, amount)
            self._retain(settlement)
            return self._commit("transfer", events)

    def transfer_with_recall_right(
        self, caller: Identity, index: int, to: Identity, amount: int, payment: int = 0
    ) -> List[EventRecord]:
        """
        Lend properly owned units to `to`; caller may recall them at any time.

        Raises:
            IssuanceRevoked: If the issuance is revoked.
            InvalidArgument: If to == caller.
            InsufficientBalance: If caller properly owns fewer than amount units.
            InsufficientFee: If payment is below the required transfer fee.
            CollaboratorFailure: If the price oracle rejects the conversion.
        """
        with self._operation("transfer_with_recall_right"):
            self.access.authorize(Operation.TRANSFER_WITH_RECALL_RIGHT, caller)
            issuance = self.balances.check_transfer_with_recall_right(index, caller, to, amount)
            settlement = self._settle_transfer_fee(issuance, amount, payment)
            self.gateway.forward(settlement)
            events = self.balances.transfer_with_recall_right(index, caller, to, amount)
            self._retain(settlement)
            return self._commit("transfer_with_recall_right", events)

    def recall(self, caller: Identity, index: int, from_holder: Identity, amount: int) -> List[EventRecord]:
        """
        Pull back units caller lent to from_holder. No fee is charged.

        Raises:
            IssuanceRevoked: If the issuance is revoked.
            InvalidArgument: If from_holder == caller.
            InsufficientBalance: If caller may recall fewer than amount units.
        """
        with self._operation("recall"):
            self.access.authorize(Operation.RECALL, caller)
            self.balances.check_recall(index, from_holder, caller, amount)
            events = self.balances.recall(index, from_holder, caller, amount)
            return self._commit("recall", events)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @staticmethod
    def _validate_share(share: int) -> int:
        return require_uint(share, "issuer_fee_share", BASIS_POINTS)

    @staticmethod
    def _fiat_value(issuance: Issuance, amount: int) -> int:
        if issuance.original_supply == 0:
            return 0
        return issuance.original_value * amount // issuance.original_supply

    def _settle_transfer_fee(self, issuance: Issuance, amount: int, payment: int) -> FeeSettlement:
        require_uint(payment, "payment")
        fiat_fee = self.fee_tiers.fee_for(self._fiat_value(issuance, amount))
        return self.gateway.settle(fiat_fee, payment, allow_overpayment=self.allow_overpayment)

    def _retain(self, settlement: FeeSettlement) -> None:
        """Split the retained part of a fee payment between issuer and root accounts."""
        issuer_part = settlement.retained * self.issuer_fee_share // BASIS_POINTS
        self.fee_balances[FeeAccount.ISSUER] += issuer_part
        self.fee_balances[FeeAccount.ROOT] += settlement.retained - issuer_part

    def _commit(self, operation: str, events: List[LedgerEvent]) -> List[EventRecord]:
        records = self.event_log.commit(events, self._current_time)
        if self.verbose:
            summary = ", ".join(repr(e) for e in events)
            print(f"✓ APPLIED {operation}: {summary}")
        return records

    @contextmanager
    def _operation(self, operation: str) -> Iterator[None]:
        try:
            yield
        except LedgerError as e:
            if self.verbose:
                print(f"✗ REJECTED {operation}: {e}")
            raise

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> LicenseLedger:
        """
        Create a deep copy of this ledger.

        Issuances, balances, caches, logs, fee accounts and access state are
        fully independent. The price oracle is an external collaborator and
        is shared with the original.

        Returns:
            A new LicenseLedger instance with identical state
        """
        cloned = LicenseLedger.__new__(LicenseLedger)
        cloned.access = self.access.copy()
        cloned.issuer_name = self.issuer_name
        cloned.liability = self.liability
        cloned.safekeeping_period = self.safekeeping_period
        cloned.issuer_certificate = self.issuer_certificate
        cloned.signature = self.signature
        cloned.issuance_fee = self.issuance_fee
        cloned.issuer_fee_share = self.issuer_fee_share
        cloned.fee_tiers = self.fee_tiers.copy()
        cloned.allow_overpayment = self.allow_overpayment
        cloned.gateway = PriceConversionGateway(self.gateway.oracle)
        cloned.gateway.forwarded_total = self.gateway.forwarded_total
        cloned.issuances = self.issuances.copy()
        cloned.balances = BalanceLedger(cloned.issuances)
        cloned.event_log = self.event_log.copy()
        cloned.fee_balances = dict(self.fee_balances)
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        return cloned

    def __repr__(self):
        return (
            f"LicenseLedger(issuer={self.issuer}, issuances={self.issuance_count()}, "
            f"events={len(self.event_log)}, signed={self.signed}, disabled={self.disabled})"
        )
