"""
events.py - Audit events emitted by the license ledger

Events are immutable data. The ledger stages the events of an operation while
it runs and appends them to the EventLog only when the operation commits, so a
rejected operation leaves no trace in the log.

Each logged event is wrapped in an EventRecord carrying a monotonic sequence
number and the ledger's logical time at commit.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional, Tuple, Type, TypeVar, Union

from .core import FeeAccount, Identity


# ============================================================================
# EVENT DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Issued:
    """A new issuance was created."""
    issuance_index: int


@dataclass(frozen=True, slots=True)
class Transferred:
    """Units moved from source to dest; recallable marks a transfer with recall right."""
    issuance_index: int
    source: Identity
    dest: Identity
    amount: int
    recallable: bool


@dataclass(frozen=True, slots=True)
class Recalled:
    """Units held by source were pulled back by dest."""
    issuance_index: int
    source: Identity
    dest: Identity
    amount: int


@dataclass(frozen=True, slots=True)
class Revoked:
    issuance_index: int
    reason: str


@dataclass(frozen=True, slots=True)
class Signed:
    signature: str


@dataclass(frozen=True, slots=True)
class Disabled:
    pass


@dataclass(frozen=True, slots=True)
class ManagementTakenOver:
    """Management delegated to manager; None means issuer control was restored."""
    manager: Optional[Identity]


@dataclass(frozen=True, slots=True)
class FeeRateChanged:
    new_rate: int


@dataclass(frozen=True, slots=True)
class TransferFeeTiersChanged:
    minimums: Tuple[int, ...]
    rates: Tuple[int, ...]


@dataclass(frozen=True, slots=True)
class IssuerFeeShareChanged:
    new_share: int


@dataclass(frozen=True, slots=True)
class Withdrawn:
    account: FeeAccount
    recipient: Identity
    amount: int


LedgerEvent = Union[
    Issued, Transferred, Recalled, Revoked, Signed, Disabled,
    ManagementTakenOver, FeeRateChanged, TransferFeeTiersChanged,
    IssuerFeeShareChanged, Withdrawn,
]

E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class EventRecord:
    """
    A committed event with its position in the log.

    Attributes:
        sequence_number: Monotonic position within the ledger's log.
        timestamp: Logical time of the ledger when the event was committed.
        event: The event payload.
    """
    sequence_number: int
    timestamp: datetime
    event: LedgerEvent

    def __repr__(self) -> str:
        return f"EventRecord(#{self.sequence_number} @ {self.timestamp.isoformat()}: {self.event!r})"


# ============================================================================
# EVENT LOG
# ============================================================================

class EventLog:
    """
    Append-only log of committed events.

    Events are only added through commit(), which assigns sequence numbers
    to a whole operation's batch at once.
    """

    def __init__(self):
        self._records: List[EventRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[EventRecord]:
        return iter(list(self._records))

    def commit(self, events: List[LedgerEvent], timestamp: datetime) -> List[EventRecord]:
        """Append a batch of staged events and return their records."""
        start = len(self._records)
        records = [
            EventRecord(sequence_number=start + i, timestamp=timestamp, event=event)
            for i, event in enumerate(events)
        ]
        self._records.extend(records)
        return records

    def since(self, sequence_number: int) -> List[EventRecord]:
        """Return records with sequence number >= sequence_number."""
        return self._records[sequence_number:]

    def of_type(self, event_type: Type[E]) -> List[E]:
        """Return the payloads of all events of one type, in log order."""
        return [r.event for r in self._records if isinstance(r.event, event_type)]

    def copy(self) -> EventLog:
        cloned = EventLog()
        cloned._records = list(self._records)
        return cloned
