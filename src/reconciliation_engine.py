"""
Reconciliation Engine - one open document at a scan station.

Wires the matcher, ledger, incident processor, completion detector,
container tracker and session clock together and is the only object the
UI, the CLI and the scanner feed talk to.

process_scan() never raises for matching or ledger problems. Every scan
returns a (ScanResult, status) pair and the caller decides how loud to be
about it.
"""

import time
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from PySide6.QtCore import QObject, Signal

from code_normalizer import normalize_code
from completion_detector import CompletionDetector
from container_tracker import ContainerTracker
from exceptions import ReconcilerError, ValidationError
from incident_processor import IncidentFlow, IncidentProcessor
from line_registry import LineRegistry
from logger import get_logger
from models import DocumentHeader, Incident, IncidentType, Line
from quantity_ledger import OVERFLOW, LedgerOutcome, QuantityLedger
from reconciliation_config import ReconciliationConfig
from scan_matcher import ContainerContentIndex, ScanMatcher
from session_clock import SessionClock
from settings import ReconcilerSettings

logger = get_logger(__name__)

SCAN_OK = "SCAN_OK"
DOCUMENT_COMPLETE = "DOCUMENT_COMPLETE"
CODE_NOT_FOUND = "CODE_NOT_FOUND"
OVERFLOW_REJECTED = "OVERFLOW"
CONTAINER_OPENED = "CONTAINER_OPENED"
CONTAINER_EXPECTED = "CONTAINER_EXPECTED"
EMPTY_SCAN = "EMPTY_SCAN"
DOCUMENT_FINALIZED = "DOCUMENT_FINALIZED"

SNAPSHOT_VERSION = '1.0'


@dataclass(frozen=True)
class ScanResult:
    """
    What a single scan did.

    Attributes:
        code: Canonical scanned code
        line_index: Matched line, if any
        multiplier: Units the scan stands for (0 when nothing matched)
        matched_by: code, alternate_code or inner_pack
        container_id: Container the units were written to, or the one opened
        message: Operator-facing text for rejections and capped scans
    """
    code: str
    line_index: Optional[int] = None
    multiplier: int = 0
    matched_by: Optional[str] = None
    container_id: Optional[str] = None
    message: str = ''


class ReconciliationEngine(QObject):
    """
    Scan-to-document reconciliation for one document.

    Attributes:
        line_updated (Signal): index, done (measure), target
        scan_rejected (Signal): canonical code, status
        document_completed (Signal): emitted when the document becomes complete
        container_opened (Signal): instance id of a newly opened container
        registry (LineRegistry): Lines being reconciled
        config (ReconciliationConfig): Workflow policy
        ledger (QuantityLedger): Counter owner
        matcher (ScanMatcher): Code resolution
        incidents (IncidentProcessor): Declared exceptions
        incident_flow (IncidentFlow): The incident dialog state machine
        completion (CompletionDetector): Line and document completion
        containers (ContainerTracker): Container manifests
        clock (SessionClock): Elapsed time
        finalized (bool): Set once the backend accepted the finalization
    """
    line_updated = Signal(int, int, int)  # index, done, target
    scan_rejected = Signal(str, str)      # code, status
    document_completed = Signal()
    container_opened = Signal(str)        # instance_id

    def __init__(self, registry: LineRegistry,
                 config: Optional[ReconciliationConfig] = None,
                 content_index: Optional[ContainerContentIndex] = None,
                 container_catalog: Optional[Dict[str, str]] = None,
                 settings: Optional[ReconcilerSettings] = None,
                 time_source: Callable[[], float] = time.monotonic):
        super().__init__()

        self.registry = registry
        self.config = config or ReconciliationConfig()
        self.settings = settings or ReconcilerSettings()
        self._now = time_source

        self.ledger = QuantityLedger(registry, self.config)
        self.matcher = ScanMatcher(registry, content_index)
        self.incidents = IncidentProcessor(registry, self.ledger)
        self.incidents.on_applied = self._on_incident_applied
        self.incident_flow = IncidentFlow(self.incidents, self.settings.authorization_secret)
        self.completion = CompletionDetector(registry, self.config)
        self.containers = ContainerTracker(container_catalog)
        self.clock = SessionClock(time_source)

        self.finalized = False
        self.revision = 0
        self._was_complete = self.completion.is_document_complete()
        self._highlight: Optional[Tuple[int, float]] = None
        self._listeners: List[Callable[["ReconciliationEngine"], None]] = []

        logger.info(
            f"Engine ready for document {registry.header.folio}: {len(registry)} lines, "
            f"workflow={self.config.workflow}, overflow={self.config.overflow_policy.value}"
        )

    @property
    def header(self) -> DocumentHeader:
        return self.registry.header

    @property
    def lines(self) -> List[Line]:
        return self.registry.lines

    def add_change_listener(self, listener: Callable[["ReconciliationEngine"], None]):
        """Register a callback run after every state change (draft saving)."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def process_scan(self, raw_code: str) -> Tuple[ScanResult, str]:
        """
        Apply one scan.

        Args:
            raw_code: Text as emitted by the scanner

        Returns:
            (ScanResult, status) where status is one of SCAN_OK,
            DOCUMENT_COMPLETE, CODE_NOT_FOUND, OVERFLOW, CONTAINER_OPENED,
            CONTAINER_EXPECTED, EMPTY_SCAN, DOCUMENT_FINALIZED
        """
        code = normalize_code(raw_code)

        if self.finalized:
            return self._reject(ScanResult(code, message="This document is already finalized"),
                                DOCUMENT_FINALIZED)

        if not code:
            return ScanResult(code), EMPTY_SCAN

        tracking = self.config.require_container
        if tracking and self.containers.is_container_code(code):
            instance = self.containers.open(code)
            self._changed()
            self.container_opened.emit(instance.instance_id)
            return ScanResult(code, container_id=instance.instance_id), CONTAINER_OPENED

        if tracking and self.containers.awaiting_container:
            return self._reject(ScanResult(code, message="Scan a container code first"),
                                CONTAINER_EXPECTED)

        match = self.matcher.match(code)
        if match is None:
            logger.info(f"Scan not found on document: {code}")
            return self._reject(ScanResult(code, message=f"Code {code} was not found on this document"),
                                CODE_NOT_FOUND)

        outcome = self.ledger.apply_scan(match.line_index, match.multiplier)
        if outcome.status == OVERFLOW:
            result = ScanResult(code, match.line_index, match.multiplier, match.matched_by,
                                message=outcome.message)
            return self._reject(result, OVERFLOW_REJECTED)

        line = self.registry[match.line_index]
        container_id = self.containers.record(line.code, outcome.units) if tracking else None
        self._highlight = (match.line_index, self._now())
        logger.debug(f"Scan accepted: {line.code} x{outcome.units} via {match.matched_by}")

        result = ScanResult(code, match.line_index, match.multiplier, match.matched_by, container_id,
                            message=outcome.message)
        completed = self._after_mutation(match.line_index)
        return result, DOCUMENT_COMPLETE if completed else SCAN_OK

    def _reject(self, result: ScanResult, status: str) -> Tuple[ScanResult, str]:
        self.scan_rejected.emit(result.code, status)
        return result, status

    def highlighted_line(self) -> Optional[int]:
        """Index of the last scanned line while its highlight window is open."""
        if self._highlight is None:
            return None
        index, scanned_at = self._highlight
        if self._now() - scanned_at > self.settings.highlight_seconds:
            return None
        return index

    # ------------------------------------------------------------------
    # Manual packing
    # ------------------------------------------------------------------

    def increment(self, index: int) -> LedgerOutcome:
        return self._manual(self.ledger.increment, index)

    def decrement(self, index: int) -> LedgerOutcome:
        return self._manual(self.ledger.decrement, index)

    def fill_to_required(self, index: int) -> LedgerOutcome:
        return self._manual(self.ledger.fill_to_required, index)

    def _manual(self, operation: Callable[[int], LedgerOutcome], index: int) -> LedgerOutcome:
        self._check_open()
        self._check_index(index)
        outcome = operation(index)
        if outcome.mutated:
            self._after_mutation(index)
        return outcome

    # ------------------------------------------------------------------
    # Line management (counting workflows)
    # ------------------------------------------------------------------

    def add_line(self, code: str, name: str = '', quantity: Any = 0,
                 unit: Optional[str] = None, article_id: Optional[int] = None,
                 alternate_code: str = '') -> int:
        """
        Add an article that is not on the document.

        The new line starts already counted: required, packed and scanned
        all equal quantity.

        Raises:
            ReconcilerError: If the workflow does not allow manual lines
            ValidationError: On an empty, duplicate or negative entry
        """
        self._check_open()
        if not self.config.allow_manual_add:
            raise ReconcilerError(f"Manual lines are not allowed in the {self.config.workflow} workflow")

        try:
            qty = int(quantity)
        except (TypeError, ValueError):
            raise ValidationError("Quantity must be a whole number") from None
        if qty < 0:
            raise ValidationError("Quantity cannot be negative")

        index = self.registry.add_line(Line(
            code=code, required=qty, packed=qty, scanned=qty,
            name=name, unit=unit, article_id=article_id, alternate_code=alternate_code,
        ))
        logger.info(f"Manual line added: {self.registry[index].code} x{qty}")
        self._after_mutation(index)
        return index

    def add_from_catalog(self, article: Dict[str, Any]) -> int:
        """
        Add a looked-up catalog article with quantity 1, or count one more
        unit when it is already on the document.

        Args:
            article: Dict with code and optionally name, unit, article_id, alternate_code
        """
        self._check_open()
        code = normalize_code(article.get('code', ''))
        index = self.registry.index_of(code)
        if index is None:
            return self.add_line(
                code, name=article.get('name', ''), quantity=1, unit=article.get('unit'),
                article_id=article.get('article_id'), alternate_code=article.get('alternate_code', ''),
            )

        outcome = self.ledger.apply_scan(index, 1)
        if outcome.mutated:
            self._after_mutation(index)
        return index

    def remove_line(self, index: int) -> Line:
        """
        Raises:
            ReconcilerError: If the workflow does not allow line removal
        """
        self._check_open()
        if not self.config.allow_line_removal:
            raise ReconcilerError(f"Lines cannot be removed in the {self.config.workflow} workflow")
        self._check_index(index)
        line = self.registry.remove_line(index)
        self.incidents.missing_quantities.pop(line.code, None)
        self._highlight = None
        self._changed()
        self._check_completion()
        return line

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def begin_add_container(self):
        """
        Expect a container code on the next scan.

        Raises:
            ReconcilerError: If the workflow does not track containers
        """
        self._check_open()
        if not self.config.require_container:
            raise ReconcilerError(f"The {self.config.workflow} workflow does not use containers")
        self.containers.begin_add_container()

    # ------------------------------------------------------------------
    # Incidents
    # ------------------------------------------------------------------

    def begin_incident(self) -> IncidentFlow:
        """Open the incident dialog flow; returns it positioned at type selection."""
        self._check_open()
        self.incident_flow.begin()
        return self.incident_flow

    def declare_incident(self, incident_type: IncidentType, code: str, quantity: Any,
                         expected_code: Optional[str] = None, name: str = '',
                         notes: str = '', invoiced: Optional[bool] = None) -> Incident:
        """Record an incident directly, bypassing the dialog flow."""
        self._check_open()
        return self.incidents.create(incident_type, code, quantity, expected_code=expected_code,
                                     name=name, notes=notes, invoiced=invoiced)

    def _on_incident_applied(self, incident: Incident):
        target = incident.expected_code if incident.incident_type == IncidentType.CHANGED else incident.code
        index = self.registry.index_of(target)
        if index is None:
            self._changed()
            return
        self._after_mutation(index)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def is_complete(self) -> bool:
        return self.completion.is_document_complete()

    def progress(self) -> Dict[str, Any]:
        return self.completion.progress()

    def mark_finalized(self):
        """Freeze the session after the backend accepted the finalization."""
        self.clock.stop()
        self.containers.finalize_all()
        self.finalized = True
        self._changed()
        logger.info(f"Document {self.header.folio} finalized in {self.clock.elapsed_seconds:.1f}s")

    def _after_mutation(self, index: int) -> bool:
        """Start the clock, notify listeners and report a completion transition."""
        totals = self.ledger.totals()
        if totals['scanned'] or totals['packed']:
            self.clock.start()
        self._changed()
        self.line_updated.emit(index, self.completion.measure(index), self.completion.effective_target(index))
        return self._check_completion()

    def _check_completion(self) -> bool:
        complete = self.completion.is_document_complete()
        became_complete = complete and not self._was_complete
        self._was_complete = complete
        if became_complete:
            logger.info(f"Document {self.header.folio} complete")
            self.document_completed.emit()
        return complete

    def _changed(self):
        self.revision += 1
        for listener in self._listeners:
            listener(self)

    def _check_open(self):
        if self.finalized:
            raise ReconcilerError("This document is already finalized")

    def _check_index(self, index: int):
        if not 0 <= index < len(self.registry):
            raise ValidationError(f"Line {index} does not exist")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def to_snapshot(self) -> Dict[str, Any]:
        """Everything needed to resume this document after a crash."""
        return {
            'version': SNAPSHOT_VERSION,
            'timestamp': datetime.now().isoformat(),
            'workflow': self.config.workflow,
            'header': {f.name: getattr(self.header, f.name) for f in fields(DocumentHeader)},
            'lines': [line.to_dict() for line in self.registry],
            'incidents': self.incidents.to_list(),
            'containers': self.containers.manifests(),
            'active_container': self.containers.active_id,
            'elapsed_seconds': self.clock.elapsed_seconds,
            'finalized': self.finalized,
        }

    def restore_snapshot(self, snapshot: Dict[str, Any]):
        """
        Load a snapshot written by to_snapshot().

        Raises:
            ValidationError: If the snapshot belongs to another document
        """
        folio = snapshot.get('header', {}).get('folio')
        if folio != self.header.folio:
            raise ValidationError(f"Draft is for document {folio}, not {self.header.folio}")

        line_fields = {f.name for f in fields(Line)}
        self.registry.replace_lines([
            Line(**{k: v for k, v in item.items() if k in line_fields})
            for item in snapshot.get('lines', [])
        ])
        self.incidents.restore(snapshot.get('incidents', []))
        self.containers.restore(snapshot.get('containers', []), snapshot.get('active_container'))
        self.clock.resume_from(snapshot.get('elapsed_seconds', 0.0))
        self.finalized = bool(snapshot.get('finalized', False))
        if self.finalized:
            self.clock.stop()
        self._was_complete = self.completion.is_document_complete()
        self.revision += 1

        logger.info(f"Draft restored for {self.header.folio}: {len(self.registry)} lines, "
                    f"{len(self.incidents.incidents)} incidents")
