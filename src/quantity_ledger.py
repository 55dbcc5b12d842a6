"""
Quantity Ledger - packed / scanned counters for every line of a document.

`scanned` is what the scanner confirmed; `packed` is what the operator says
was physically placed. They are separate because some workflows let the
operator pack by hand (the +/- and "fill" buttons) ahead of scan
confirmation.

The overflow policy decides what a scan past the target does:
- STRICT rejects it and leaves the ledger untouched
- CAPPED credits only the units that still fit and reports the rest as dropped
- ELASTIC accepts it and raises the line's required quantity to match

Invariants kept by every method:
    0 <= scanned <= required
    0 <= packed <= required
"""

from dataclasses import dataclass
from typing import Dict, Optional

from line_registry import LineRegistry
from logger import get_logger
from reconciliation_config import OverflowPolicy, ReconciliationConfig, RequirementMeasure

logger = get_logger(__name__)

ACCEPTED = "ACCEPTED"
CAPPED = "CAPPED"
EXTENDED = "EXTENDED"
OVERFLOW = "OVERFLOW"
AT_REQUIRED = "AT_REQUIRED"
AT_ZERO = "AT_ZERO"
FILLED = "FILLED"


@dataclass(frozen=True)
class LedgerOutcome:
    """
    Result of one ledger operation.

    Attributes:
        status: ACCEPTED, CAPPED, EXTENDED, OVERFLOW, AT_REQUIRED, AT_ZERO or FILLED
        line_index: Line the operation targeted
        units: Units the operation added, or tried to add (negative for decrement)
        needed: For OVERFLOW, how many more units the line still takes
        dropped: For CAPPED, units of the scan that did not fit
    """
    status: str
    line_index: int
    units: int = 0
    needed: Optional[int] = None
    dropped: int = 0

    @property
    def mutated(self) -> bool:
        return self.status in (ACCEPTED, CAPPED, EXTENDED, FILLED)

    @property
    def message(self) -> str:
        if self.status == OVERFLOW:
            return f"This scan would add {self.units} units, but only {self.needed} more needed"
        if self.status == CAPPED:
            return f"Only {self.units} of {self.units + self.dropped} units counted, the line is full"
        if self.status == AT_REQUIRED:
            return "The required quantity has already been reached"
        if self.status == AT_ZERO:
            return "Nothing to remove from this line"
        return ""


class QuantityLedger:
    """
    Owns the counter updates for a registry's lines.

    Attributes:
        registry (LineRegistry): Lines being reconciled
        config (ReconciliationConfig): Overflow policy and measure
        revision (int): Incremented on every mutation
    """

    def __init__(self, registry: LineRegistry, config: ReconciliationConfig):
        self.registry = registry
        self.config = config
        self.revision = 0

    def apply_scan(self, index: int, multiplier: int = 1) -> LedgerOutcome:
        """
        Credit a matched scan to a line.

        Args:
            index: Line index from the matcher
            multiplier: Units represented by the scan (inner packs > 1)

        Returns:
            LedgerOutcome with status ACCEPTED, CAPPED, EXTENDED or OVERFLOW
        """
        line = self.registry[index]
        target = line.target
        new_scanned = line.scanned + multiplier

        if new_scanned <= target:
            line.scanned = new_scanned
            if self.config.scan_updates_packed:
                line.packed = min(line.packed + multiplier, target)
            self._touch()
            return LedgerOutcome(ACCEPTED, index, multiplier)

        remaining = target - line.scanned
        if self.config.overflow_policy == OverflowPolicy.CAPPED and remaining > 0:
            line.scanned = target
            if self.config.scan_updates_packed:
                line.packed = min(line.packed + remaining, target)
            self._touch()
            logger.info(f"Scan on {line.code} capped: {remaining} of {multiplier} units counted")
            return LedgerOutcome(CAPPED, index, remaining, dropped=multiplier - remaining)

        if self.config.overflow_policy != OverflowPolicy.ELASTIC:
            needed = max(remaining, 0)
            logger.info(f"Overflow on {line.code}: scan adds {multiplier}, {needed} more needed")
            return LedgerOutcome(OVERFLOW, index, multiplier, needed=needed)

        # Elastic: the count on the shelf wins
        line.required = new_scanned + line.returned
        line.scanned = new_scanned
        line.packed = new_scanned
        self._touch()
        logger.info(f"Line {line.code} extended to {line.required}")
        return LedgerOutcome(EXTENDED, index, multiplier)

    def increment(self, index: int) -> LedgerOutcome:
        """Add one packed unit by hand, never past the target."""
        line = self.registry[index]
        if line.packed >= line.target:
            return LedgerOutcome(AT_REQUIRED, index, 1)
        line.packed += 1
        self._touch()
        return LedgerOutcome(ACCEPTED, index, 1)

    def decrement(self, index: int) -> LedgerOutcome:
        """Remove one packed unit; scanned is clamped so it never exceeds packed."""
        line = self.registry[index]
        if line.packed <= 0:
            return LedgerOutcome(AT_ZERO, index, -1)
        line.packed -= 1
        line.scanned = min(line.scanned, line.packed)
        self._touch()
        return LedgerOutcome(ACCEPTED, index, -1)

    def fill_to_required(self, index: int) -> LedgerOutcome:
        """
        Mark a line as fully packed.

        When completion is measured on `packed`, `scanned` follows so the line
        reads as done; otherwise scan confirmation is still pending.
        """
        line = self.registry[index]
        added = line.target - line.packed
        line.packed = line.target
        if self.config.requirement_measure == RequirementMeasure.PACKED:
            line.scanned = line.target
        self._touch()
        return LedgerOutcome(FILLED, index, added)

    def set_counts(self, index: int, required: Optional[int] = None,
                   scanned: Optional[int] = None, packed: Optional[int] = None):
        """Overwrite counters directly; used by incidents, which bypass the policy."""
        line = self.registry[index]
        if required is not None:
            line.required = max(required, 0)
        if scanned is not None:
            line.scanned = min(max(scanned, 0), line.required)
        if packed is not None:
            line.packed = min(max(packed, 0), line.required)
        self._touch()

    def measure(self, index: int) -> int:
        """Counter that decides completion for this document."""
        line = self.registry[index]
        if self.config.requirement_measure == RequirementMeasure.PACKED:
            return line.packed
        return line.scanned

    def totals(self) -> Dict[str, int]:
        return {
            'required': sum(line.required for line in self.registry),
            'scanned': sum(line.scanned for line in self.registry),
            'packed': sum(line.packed for line in self.registry),
        }

    def _touch(self):
        self.revision += 1
