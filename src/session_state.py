"""
Session State - everything the station knows about the order being verified.

A session exists for exactly one order at a time. It holds the phase, the
active order and the scan ledger: the codes consumed so far and the
per-SKU counts they produced. SessionState is immutable; the state machine
returns a new instance for every accepted event.

Ledger invariants (checked by check_invariants()):
- 0 <= scanned_counts[sku] <= item.quantity for every SKU
- A code consumed through the barcode path appears only once
- len(scanned_codes) == sum(scanned_counts.values())
"""
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

from exceptions import InvariantViolation
from models import Order


class Phase:
    """Workflow phases of a dispatch session."""
    LOCATING = "LOCATING"
    VERIFYING_ITEMS = "VERIFYING_ITEMS"
    CAPTURING_LABEL = "CAPTURING_LABEL"
    CONFIRMING = "CONFIRMING"

    ALL = (LOCATING, VERIFYING_ITEMS, CAPTURING_LABEL, CONFIRMING)


class InFlight:
    """Collaborator calls that can be outstanding for a session."""
    LOOKUP = "LOOKUP"
    LABEL_SAVE = "LABEL_SAVE"
    COMMIT = "COMMIT"


@dataclass(frozen=True)
class ScanEntry:
    """
    One consumed code.

    Attributes:
        code: Scanned barcode, or the SKU itself for a manual confirmation
        sku: SKU the code counted towards
        manual: True when recorded through manual confirmation
    """
    code: str
    sku: str
    manual: bool = False


@dataclass(frozen=True)
class SessionState:
    """
    Immutable snapshot of a dispatch session.

    Attributes:
        phase: One of Phase.ALL
        active_order: Order being verified, or None while locating
        entries: Scan ledger in consumption order
        scanned_counts: Units confirmed so far per SKU
        candidates: Orders offered for disambiguation (LOCATING only)
        shipping_label: Label saved for the active order (CONFIRMING only)
        in_flight: Outstanding collaborator call (InFlight value) or None
    """
    phase: str = Phase.LOCATING
    active_order: Optional[Order] = None
    entries: Tuple[ScanEntry, ...] = ()
    scanned_counts: Dict[str, int] = field(default_factory=dict)
    candidates: Tuple[Order, ...] = ()
    shipping_label: Optional[str] = None
    in_flight: Optional[str] = None

    @classmethod
    def initial(cls) -> 'SessionState':
        return cls()

    @property
    def scanned_codes(self) -> Tuple[str, ...]:
        """Consumed codes in insertion order, as sent with the dispatch commit."""
        return tuple(entry.code for entry in self.entries)

    @property
    def is_idle(self) -> bool:
        """True when no order is active and nothing is pending."""
        return (self.phase == Phase.LOCATING and self.active_order is None
                and not self.candidates and self.in_flight is None)

    def has_code(self, code: str) -> bool:
        return any(entry.code == code for entry in self.entries)

    def count_for(self, sku: str) -> int:
        return self.scanned_counts.get(sku, 0)

    @property
    def total_scanned(self) -> int:
        return sum(self.scanned_counts.values())

    @property
    def total_required(self) -> int:
        return self.active_order.total_required if self.active_order else 0

    @property
    def remaining(self) -> int:
        return max(self.total_required - self.total_scanned, 0)

    def all_items_complete(self) -> bool:
        """True when every item of the active order has reached its quantity."""
        if self.active_order is None:
            return False
        return all(self.count_for(item.sku) >= item.quantity for item in self.active_order.items)

    def with_entry(self, code: str, sku: str, manual: bool = False) -> 'SessionState':
        """Return a new state with one more unit of sku consumed by code."""
        counts = dict(self.scanned_counts)
        counts[sku] = counts.get(sku, 0) + 1
        return replace(
            self,
            entries=self.entries + (ScanEntry(code=code, sku=sku, manual=manual),),
            scanned_counts=counts,
        )

    def progress(self) -> Dict[str, Tuple[int, int]]:
        """Per-SKU (scanned, required) pairs for the active order."""
        if self.active_order is None:
            return {}
        return {item.sku: (self.count_for(item.sku), item.quantity) for item in self.active_order.items}

    def check_invariants(self) -> None:
        """
        Verify the scan ledger.

        Raises:
            InvariantViolation: If any ledger invariant does not hold
        """
        if self.phase not in Phase.ALL:
            raise InvariantViolation(f"Unknown phase: {self.phase}")

        if self.active_order is None:
            if self.entries or self.scanned_counts:
                raise InvariantViolation("Scan ledger not empty without an active order")
            return

        for sku, count in self.scanned_counts.items():
            item = self.active_order.find_item(sku)
            if item is None:
                raise InvariantViolation(f"Count recorded for SKU {sku} not in order")
            if not 0 <= count <= item.quantity:
                raise InvariantViolation(f"SKU {sku}: count {count} outside 0..{item.quantity}")

        seen = set()
        for entry in self.entries:
            if not entry.manual and entry.code in seen:
                raise InvariantViolation(f"Code {entry.code} consumed twice")
            seen.add(entry.code)

        if len(self.entries) != self.total_scanned:
            raise InvariantViolation(
                f"{len(self.entries)} codes consumed but counts sum to {self.total_scanned}"
            )

        for sku, count in self.scanned_counts.items():
            consumed = sum(1 for entry in self.entries if entry.sku == sku)
            if consumed != count:
                raise InvariantViolation(f"SKU {sku}: count {count} but {consumed} codes consumed")
