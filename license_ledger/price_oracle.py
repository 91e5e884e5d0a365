"""
price_oracle.py - Fiat to native value conversion

Provides the boundary to the external price-conversion service:

Classes:
- PriceOracle: Protocol defining the collaborator interface
- StaticPriceOracle: Fixed conversion rate with a minimum service charge
- PriceConversionGateway: Computes, settles and forwards the payment a fiat fee requires
- FeeSettlement: Result of a successful settlement

Pricing and paying are separate steps. quote() has no side effects and may
be called while an operation is still being validated; charge() consumes
funds and is only called once every check of the operation has passed.

Fiat amounts are integers in minor currency units (cents). Native amounts are
integers in the ledger's smallest value unit.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_UP
from typing import List, Protocol, Tuple, runtime_checkable

from .core import (
    CollaboratorFailure, InsufficientFee, InvalidArgument,
    require_uint,
)


class PriceOracleError(Exception):
    """Raised by a price oracle that rejects a quote or a charge."""
    pass


@runtime_checkable
class PriceOracle(Protocol):
    """
    Protocol for price-conversion services.

    quote() prices a request without consuming anything. charge() forwards a
    payment for a previously quoted fee. Implementations raise
    PriceOracleError when the payment is below their minimum_charge or when
    they cannot quote.
    """
    minimum_charge: int

    def quote(self, fiat_minor_units: int, payment_supplied: int) -> int:
        """Convert a fiat amount to native units. No side effects."""
        ...

    def charge(self, fiat_minor_units: int, amount: int) -> None:
        """Consume amount native units as payment for fiat_minor_units."""
        ...


def _validate_rate(native_per_fiat_unit) -> Decimal:
    if not isinstance(native_per_fiat_unit, Decimal):
        native_per_fiat_unit = Decimal(str(native_per_fiat_unit))
    if native_per_fiat_unit < 0:
        raise InvalidArgument(f"Exchange rate must be non-negative, got {native_per_fiat_unit}")
    return native_per_fiat_unit


class StaticPriceOracle:
    """
    Price oracle with a fixed exchange rate.

    Conversions round up to the next native unit, the rounding used for fees.
    Every charge is recorded as (fiat_minor_units, amount).
    """

    def __init__(self, native_per_fiat_unit: Decimal, minimum_charge: int = 0):
        """
        Args:
            native_per_fiat_unit: Native units per fiat minor unit.
            minimum_charge: Smallest payment the oracle accepts for a call.
        """
        self.native_per_fiat_unit = _validate_rate(native_per_fiat_unit)
        self.minimum_charge = require_uint(minimum_charge, "minimum_charge")
        self.calls: List[Tuple[int, int]] = []

    def quote(self, fiat_minor_units: int, payment_supplied: int) -> int:
        if payment_supplied < self.minimum_charge:
            raise PriceOracleError(
                f"Payment {payment_supplied} below oracle minimum {self.minimum_charge}"
            )
        native = (Decimal(fiat_minor_units) * self.native_per_fiat_unit).quantize(
            Decimal(1), rounding=ROUND_UP
        )
        return int(native)

    def charge(self, fiat_minor_units: int, amount: int) -> None:
        if amount < self.minimum_charge:
            raise PriceOracleError(
                f"Charge {amount} below oracle minimum {self.minimum_charge}"
            )
        self.calls.append((fiat_minor_units, amount))

    def update_rate(self, native_per_fiat_unit: Decimal):
        """
        Update the exchange rate.

        Raises:
            InvalidArgument: If the rate is negative.
        """
        self.native_per_fiat_unit = _validate_rate(native_per_fiat_unit)

    def __repr__(self):
        return f"StaticPriceOracle(rate={self.native_per_fiat_unit}, minimum={self.minimum_charge})"


@dataclass(frozen=True, slots=True)
class FeeSettlement:
    """
    Outcome of settling a fee payment.

    Attributes:
        fiat_fee: Fee in fiat minor units that was converted.
        required: Native units the payment had to cover.
        forwarded: Native units to pass on to the oracle.
        retained: Remainder of the payment kept by the ledger.
    """
    fiat_fee: int
    required: int
    forwarded: int
    retained: int


class PriceConversionGateway:
    """
    Wraps a PriceOracle and enforces the payment a fiat fee requires.

    The required payment is the larger of the converted amount and the
    oracle's own minimum charge, so even a zero fiat fee costs the minimum.

    settle() only quotes and validates; forward() charges the oracle.
    """

    def __init__(self, oracle: PriceOracle):
        self.oracle = oracle
        # Native units forwarded by successful settlements
        self.forwarded_total = 0

    def required_payment(self, fiat_fee: int, payment_supplied: int) -> int:
        """
        Native units needed to cover fiat_fee. Charges nothing.

        Raises:
            InsufficientFee: If payment_supplied is below the oracle's minimum charge.
            CollaboratorFailure: If the oracle cannot quote.
        """
        require_uint(fiat_fee, "fiat_fee")
        require_uint(payment_supplied, "payment")
        minimum = self.oracle.minimum_charge
        if payment_supplied < minimum:
            raise InsufficientFee(
                f"Payment {payment_supplied} below oracle minimum charge {minimum}"
            )
        try:
            converted = self.oracle.quote(fiat_fee, payment_supplied)
        except PriceOracleError as e:
            raise CollaboratorFailure(f"Price oracle rejected conversion of {fiat_fee}: {e}") from e
        return max(converted, minimum)

    def settle(
        self, fiat_fee: int, payment_supplied: int, allow_overpayment: bool = True
    ) -> FeeSettlement:
        """
        Compute the required payment and split the supplied payment.

        Nothing is charged; pass the result to forward() once the operation
        is certain to apply.

        Raises:
            InsufficientFee: If payment_supplied is below the required amount.
            InvalidArgument: If overpayment is not allowed and payment_supplied
                exceeds the required amount.
            CollaboratorFailure: If the oracle cannot quote.
        """
        required = self.required_payment(fiat_fee, payment_supplied)
        if payment_supplied < required:
            raise InsufficientFee(
                f"Payment {payment_supplied} below required {required} for fiat fee {fiat_fee}"
            )
        if not allow_overpayment and payment_supplied > required:
            raise InvalidArgument(
                f"Overpayment not accepted: required {required}, got {payment_supplied}"
            )
        return FeeSettlement(
            fiat_fee=fiat_fee,
            required=required,
            forwarded=required,
            retained=payment_supplied - required,
        )

    def forward(self, settlement: FeeSettlement) -> None:
        """
        Charge the oracle for a settlement. A zero amount is not forwarded.

        Raises:
            CollaboratorFailure: If the oracle refuses the charge.
        """
        if settlement.forwarded == 0:
            return
        try:
            self.oracle.charge(settlement.fiat_fee, settlement.forwarded)
        except PriceOracleError as e:
            raise CollaboratorFailure(
                f"Price oracle refused charge of {settlement.forwarded}: {e}"
            ) from e
        self.forwarded_total += settlement.forwarded

    def __repr__(self):
        return f"PriceConversionGateway({self.oracle!r})"
