"""
Per-document reconciliation policy.

Receiving, manual receiving, counting, order packing and transfers all run the
same engine; they differ only in the knobs below. Pick a preset with
ReconciliationConfig.for_workflow() or build one explicitly in tests.
"""

from dataclasses import dataclass, replace
from enum import Enum

from exceptions import ConfigurationError


class OverflowPolicy(str, Enum):
    """What happens when a scan would push a line past its target."""
    STRICT = "strict"    # reject, ledger unchanged
    CAPPED = "capped"    # credit only what still fits, drop the rest
    ELASTIC = "elastic"  # accept and grow the line's required quantity


class RequirementMeasure(str, Enum):
    """Which counter decides completion."""
    SCANNED = "scanned"
    PACKED = "packed"


@dataclass(frozen=True)
class ReconciliationConfig:
    """
    Attributes:
        overflow_policy: STRICT, CAPPED or ELASTIC
        require_container: Container codes open boxes and accepted scans go into
            the active one; without it container codes are ordinary scans
        requirement_measure: Counter compared against the target
        scan_updates_packed: Scans move `packed` along with `scanned`
        allow_line_removal: Operator may delete lines (counting only)
        allow_manual_add: Unknown codes may be added from the catalog
        verify_availability: Ask the backend whether the order is ready before finalizing
        allow_partial_submit: Finalization allowed while the document is incomplete
    """
    overflow_policy: OverflowPolicy = OverflowPolicy.STRICT
    require_container: bool = False
    requirement_measure: RequirementMeasure = RequirementMeasure.SCANNED
    scan_updates_packed: bool = True
    allow_line_removal: bool = False
    allow_manual_add: bool = False
    verify_availability: bool = False
    allow_partial_submit: bool = False
    workflow: str = "custom"

    @classmethod
    def for_workflow(cls, workflow: str, **overrides) -> "ReconciliationConfig":
        """
        Return the preset for a workflow, optionally overriding some fields.

        Raises:
            ConfigurationError: If the workflow name is unknown
        """
        try:
            preset = WORKFLOW_PRESETS[workflow]
        except KeyError:
            raise ConfigurationError(
                f"Unknown workflow '{workflow}'. Expected one of: {', '.join(sorted(WORKFLOW_PRESETS))}"
            ) from None
        return replace(preset, **overrides) if overrides else preset


WORKFLOW_PRESETS = {
    # Supplier receipt against a purchase order: every unit must be scanned
    "receiving": ReconciliationConfig(
        overflow_policy=OverflowPolicy.STRICT,
        requirement_measure=RequirementMeasure.SCANNED,
        workflow="receiving",
    ),
    # Receipt without a scannable order, goods placed into boxes as they arrive
    "manual_receiving": ReconciliationConfig(
        overflow_policy=OverflowPolicy.STRICT,
        require_container=True,
        requirement_measure=RequirementMeasure.SCANNED,
        workflow="manual_receiving",
    ),
    # Physical count: the shelf is the truth, lines grow to match it
    "counting": ReconciliationConfig(
        overflow_policy=OverflowPolicy.ELASTIC,
        requirement_measure=RequirementMeasure.SCANNED,
        allow_line_removal=True,
        allow_manual_add=True,
        allow_partial_submit=True,
        workflow="counting",
    ),
    # Customer order packed into shipping boxes, manual packing allowed
    "order_packing": ReconciliationConfig(
        overflow_policy=OverflowPolicy.STRICT,
        require_container=True,
        requirement_measure=RequirementMeasure.PACKED,
        verify_availability=True,
        workflow="order_packing",
    ),
    # Outbound inter-warehouse transfer: a pack larger than what is left only
    # counts the remainder
    "transfer": ReconciliationConfig(
        overflow_policy=OverflowPolicy.CAPPED,
        requirement_measure=RequirementMeasure.SCANNED,
        workflow="transfer",
    ),
}
