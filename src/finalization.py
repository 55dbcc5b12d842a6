"""
Finalization - turning a reconciled document into one backend submission.

The payload is built once per engine revision and cached, so a retry after a
network failure sends exactly what the operator saw, and a retry after more
scanning sends the new state.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from backend_client import BackendClient
from exceptions import ReconcilerError, SubmissionError, ValidationError
from logger import get_logger
from reconciliation_engine import ReconciliationEngine

logger = get_logger(__name__)


def build_payload(engine: ReconciliationEngine) -> Dict[str, Any]:
    """
    Freeze the engine state into a submission payload.

    Each line reports its required quantity, the final quantity (the
    completion measure) and the audit note left by incidents.
    """
    header = engine.header
    lines = []
    for index, line in enumerate(engine.registry):
        lines.append({
            'code': line.code,
            'article_id': line.article_id,
            'required': line.required,
            'returned': line.returned,
            'final_quantity': engine.completion.measure(index),
            'scanned': line.scanned,
            'packed': line.packed,
            'note': line.note,
        })

    return {
        'header': {
            'folio': header.folio,
            'document_id': header.document_id,
            'origin': header.origin,
            'destination': header.destination,
            'operator': header.operator,
            'warehouse': header.warehouse,
        },
        'workflow': engine.config.workflow,
        'complete': engine.is_complete(),
        'lines': lines,
        'incidents': engine.incidents.to_list(),
        'containers': engine.containers.manifests(),
        'elapsed_seconds': round(engine.clock.elapsed_seconds, 1),
        'prepared_at': datetime.now().isoformat(),
    }


class FinalizationManager:
    """
    Submits an engine's document to the backend.

    Attributes:
        engine (ReconciliationEngine): Document being finalized
        client (BackendClient): Backend connection
        draft_store: Optional DraftStore whose draft is removed on success
    """

    def __init__(self, engine: ReconciliationEngine, client: BackendClient, draft_store=None):
        self.engine = engine
        self.client = client
        self.draft_store = draft_store
        self._cached_payload: Optional[Dict[str, Any]] = None
        self._cached_revision: Optional[int] = None

    def prepare(self) -> Dict[str, Any]:
        """Return the payload for the current revision, building it if needed."""
        if self._cached_payload is None or self._cached_revision != self.engine.revision:
            self._cached_payload = build_payload(self.engine)
            self._cached_revision = self.engine.revision
        return self._cached_payload

    def submit(self) -> Dict[str, Any]:
        """
        Finalize the document.

        Returns:
            The backend's response envelope

        Raises:
            ReconcilerError: If the document is already finalized
            ValidationError: If the document is incomplete and the workflow
                             requires completion, or the order is not available
            SubmissionError: If the backend call failed; engine state is kept
        """
        engine = self.engine
        if engine.finalized:
            raise ReconcilerError("This document is already finalized")

        if not engine.config.allow_partial_submit and not engine.is_complete():
            progress = engine.progress()
            raise ValidationError(
                f"Document is not complete: {progress['lines_complete']} of "
                f"{progress['lines_total']} lines done"
            )

        if engine.config.verify_availability:
            if engine.header.document_id is None:
                raise ValidationError("The document has no backend id to check availability")
            try:
                available = self.client.check_availability(engine.header.document_id)
            except ReconcilerError as e:
                raise SubmissionError(f"Availability check failed: {e}", payload=self.prepare()) from e
            if not available:
                raise ValidationError("The order is not available to ship yet")

        payload = self.prepare()
        logger.info(f"Submitting document {engine.header.folio} ({len(payload['lines'])} lines)")
        response = self.client.submit_finalization(payload)

        engine.mark_finalized()
        if self.draft_store is not None:
            self.draft_store.delete(engine.header.folio)
        return response
