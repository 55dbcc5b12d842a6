"""
Completion Detector - decides when lines and the whole document are done.

A line is done when its measure (scanned or packed, per workflow) reaches its
target. The target is always read from the line itself: a `missing` incident
lowers `required` to the quantity that actually arrived, and later elastic
scans may raise it again. The document is done when every line is done and
the totals agree.
"""

from typing import Any, Dict

from line_registry import LineRegistry
from reconciliation_config import ReconciliationConfig, RequirementMeasure


class CompletionDetector:
    """
    Attributes:
        registry (LineRegistry): Lines of the open document
        config (ReconciliationConfig): Supplies the requirement measure
    """

    def __init__(self, registry: LineRegistry, config: ReconciliationConfig):
        self.registry = registry
        self.config = config

    def effective_target(self, index: int) -> int:
        """Required minus returned units."""
        return self.registry[index].target

    def measure(self, index: int) -> int:
        line = self.registry[index]
        if self.config.requirement_measure == RequirementMeasure.PACKED:
            return line.packed
        return line.scanned

    def is_line_complete(self, index: int) -> bool:
        target = self.effective_target(index)
        return target == 0 or self.measure(index) >= target

    def is_document_complete(self) -> bool:
        """
        True when the document has lines, every line is complete and the sum
        of measures equals the sum of targets.
        """
        if len(self.registry) == 0:
            return False

        total_measure = 0
        total_target = 0
        for index in range(len(self.registry)):
            if not self.is_line_complete(index):
                return False
            total_measure += self.measure(index)
            total_target += self.effective_target(index)
        return total_measure == total_target

    def progress(self) -> Dict[str, Any]:
        """
        Progress counters for the status bar.

        Returns:
            Dict with lines_complete, lines_total, units_done, units_required
            and ratio (0.0 - 1.0)
        """
        lines_complete = 0
        units_done = 0
        units_required = 0
        for index in range(len(self.registry)):
            target = self.effective_target(index)
            units_required += target
            units_done += min(self.measure(index), target)
            if self.is_line_complete(index):
                lines_complete += 1

        ratio = min(units_done / units_required, 1.0) if units_required else (1.0 if lines_complete else 0.0)
        return {
            'lines_complete': lines_complete,
            'lines_total': len(self.registry),
            'units_done': units_done,
            'units_required': units_required,
            'ratio': ratio,
        }
