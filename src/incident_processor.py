"""
Incident Processor - operator-declared exceptions against a document.

Four incident types exist:
- missing: fewer units arrived than ordered; the line's requirement drops
- changed: a different article arrived in place of an expected one
- return: units sent back; they no longer count toward completion
- extra: an article arrived that nobody ordered; audit entry only

Declaring an incident follows a short dialog (IncidentFlow). Extra articles
first ask whether the supplier invoiced them, and an invoiced extra needs a
supervisor's authorization before the data can be entered.
"""

import hmac
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from code_normalizer import normalize_code
from exceptions import AuthorizationError, ReconcilerError, ValidationError
from line_registry import LineRegistry
from logger import get_logger
from models import Incident, IncidentType
from quantity_ledger import QuantityLedger

logger = get_logger(__name__)


class FlowState(str, Enum):
    IDLE = "idle"
    SELECTING_TYPE = "selecting_type"
    BILLING_CONFIRMATION = "billing_confirmation"
    AUTHORIZATION = "authorization"
    DATA_ENTRY = "data_entry"
    APPLIED = "applied"


def _coerce_quantity(value: Any) -> int:
    """Return value as an int, or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError("Quantity must be a whole number")
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Quantity must be a whole number") from None
    if not number.is_integer():
        raise ValidationError("Quantity must be a whole number")
    return int(number)


class IncidentProcessor:
    """
    Validates incidents and applies them to the ledger.

    Applying is idempotent per incident_id, so replaying a restored draft or
    a double-submitted form never changes a line twice.

    Attributes:
        registry (LineRegistry): Lines of the open document
        ledger (QuantityLedger): Counter owner; incidents bypass its overflow policy
        incidents (List[Incident]): Applied incidents in order
        missing_quantities (Dict[str, int]): Line code -> received quantity
            declared by a missing incident
    """

    def __init__(self, registry: LineRegistry, ledger: QuantityLedger):
        self.registry = registry
        self.ledger = ledger
        self.incidents: List[Incident] = []
        self.missing_quantities: Dict[str, int] = {}
        self._applied_ids = set()
        self.on_applied: Optional[Callable[[Incident], None]] = None

    def create(self, incident_type: IncidentType, code: str, quantity: Any,
               expected_code: Optional[str] = None, name: str = '',
               notes: str = '', invoiced: Optional[bool] = None) -> Incident:
        """
        Validate form input, build an Incident and apply it.

        Raises:
            ValidationError: If any field is invalid; nothing is recorded
        """
        incident_type = IncidentType(incident_type)
        qty = _coerce_quantity(quantity)
        canonical = normalize_code(code)
        expected = normalize_code(expected_code) if expected_code else None

        expected_name = ''
        if expected is not None:
            index = self.registry.index_of(expected)
            if index is not None:
                expected_name = self.registry[index].name
        if not name:
            index = self.registry.index_of(canonical)
            if index is not None:
                name = self.registry[index].name

        incident = Incident(
            incident_id=uuid.uuid4().hex,
            incident_type=incident_type,
            code=canonical,
            quantity=qty,
            expected_code=expected,
            name=name,
            expected_name=expected_name,
            notes=notes.strip(),
            invoiced=invoiced,
        )
        self.apply(incident)
        return incident

    def validate(self, incident: Incident):
        """Raise ValidationError if the incident cannot be applied to this document."""
        if not incident.code:
            raise ValidationError("Article code is required")

        if incident.incident_type == IncidentType.MISSING:
            if incident.quantity < 0:
                raise ValidationError("Quantity received cannot be negative")
        elif incident.quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")

        if incident.incident_type == IncidentType.CHANGED:
            if not incident.expected_code:
                raise ValidationError("The expected article code is required for a changed article")
            if self.registry.index_of(incident.expected_code) is None:
                raise ValidationError(f"Expected article {incident.expected_code} is not on this document")

        if incident.incident_type in (IncidentType.MISSING, IncidentType.RETURN):
            if self.registry.index_of(incident.code) is None:
                raise ValidationError(f"Article {incident.code} is not on this document")

        if incident.incident_type == IncidentType.EXTRA and incident.invoiced is None:
            raise ValidationError("Confirm whether the extra article was invoiced")

    def apply(self, incident: Incident) -> bool:
        """
        Apply an incident to its target line.

        Returns:
            True if applied, False if this incident_id was already applied

        Raises:
            ValidationError: If the incident is invalid
        """
        if incident.incident_id in self._applied_ids:
            logger.debug(f"Incident {incident.incident_id} already applied, skipping")
            return False

        self.validate(incident)

        if incident.incident_type == IncidentType.MISSING:
            self._apply_missing(incident)
        elif incident.incident_type == IncidentType.CHANGED:
            self._apply_changed(incident)
        elif incident.incident_type == IncidentType.RETURN:
            self._apply_return(incident)
        else:
            logger.info(f"Extra article recorded: {incident.code} x{incident.quantity} "
                        f"(invoiced={incident.invoiced})")

        self.incidents.append(incident)
        self._applied_ids.add(incident.incident_id)
        if self.on_applied is not None:
            self.on_applied(incident)
        return True

    def _apply_missing(self, incident: Incident):
        index = self.registry.index_of(incident.code)
        line = self.registry[index]
        original = line.required
        self.ledger.set_counts(index, required=incident.quantity,
                               scanned=incident.quantity, packed=incident.quantity)
        line.note = f"short-shipped: original {original}, received {incident.quantity}"
        self.missing_quantities[line.code] = incident.quantity
        logger.info(f"Missing incident on {line.code}: {original} -> {incident.quantity}")

    def _apply_changed(self, incident: Incident):
        index = self.registry.index_of(incident.expected_code)
        line = self.registry[index]
        label = f"{incident.code} ({incident.name})" if incident.name else incident.code
        self.ledger.set_counts(index, scanned=line.required, packed=line.required)
        line.note = f"changed article: received {label}"
        logger.info(f"Changed article on {line.code}: received {incident.code}")

    def _apply_return(self, incident: Incident):
        index = self.registry.index_of(incident.code)
        line = self.registry[index]
        original = line.required
        line.returned = min(incident.quantity, line.required)
        self.ledger.set_counts(index, scanned=0, packed=min(line.packed, line.target))
        line.note = f"returned: original {original}, returned {incident.quantity}"
        logger.info(f"Return incident on {line.code}: {line.returned} of {original} excluded")

    def counts_by_type(self) -> Dict[str, int]:
        counts = {t.value: 0 for t in IncidentType}
        for incident in self.incidents:
            counts[incident.incident_type.value] += 1
        return counts

    def to_list(self) -> List[Dict[str, Any]]:
        return [incident.to_dict() for incident in self.incidents]

    def restore(self, data: List[Dict[str, Any]]):
        """
        Reload incidents from a draft without touching the ledger.

        The draft's lines already carry the incident effects, so the records
        are only re-registered.
        """
        self.incidents = []
        self.missing_quantities.clear()
        self._applied_ids = set()
        for item in data:
            incident = Incident(
                incident_id=item['incident_id'],
                incident_type=IncidentType(item['incident_type']),
                code=item['code'],
                quantity=int(item['quantity']),
                expected_code=item.get('expected_code'),
                name=item.get('name', ''),
                expected_name=item.get('expected_name', ''),
                notes=item.get('notes', ''),
                invoiced=item.get('invoiced'),
                timestamp=datetime.fromisoformat(item['timestamp']) if item.get('timestamp') else datetime.now(),
            )
            self.incidents.append(incident)
            self._applied_ids.add(incident.incident_id)
            if incident.incident_type == IncidentType.MISSING:
                self.missing_quantities[incident.code] = incident.quantity


class IncidentFlow:
    """
    The incident dialog as a state machine.

    IDLE -> SELECTING_TYPE -> (extra) BILLING_CONFIRMATION -> (invoiced)
    AUTHORIZATION -> DATA_ENTRY -> APPLIED. Other types go straight from
    type selection to data entry. cancel() returns to IDLE from anywhere
    and never touches the ledger.
    """

    def __init__(self, processor: IncidentProcessor, authorization_secret: str = ''):
        self.processor = processor
        self._secret = authorization_secret or ''
        self.state = FlowState.IDLE
        self.incident_type: Optional[IncidentType] = None
        self.invoiced: Optional[bool] = None
        self.last_incident: Optional[Incident] = None

    def begin(self):
        self._expect(FlowState.IDLE, FlowState.APPLIED)
        self._reset()
        self.state = FlowState.SELECTING_TYPE

    def select_type(self, incident_type: IncidentType):
        self._expect(FlowState.SELECTING_TYPE)
        self.incident_type = IncidentType(incident_type)
        if self.incident_type == IncidentType.EXTRA:
            self.state = FlowState.BILLING_CONFIRMATION
        else:
            self.state = FlowState.DATA_ENTRY

    def confirm_billing(self, invoiced: bool):
        self._expect(FlowState.BILLING_CONFIRMATION)
        self.invoiced = bool(invoiced)
        self.state = FlowState.AUTHORIZATION if self.invoiced else FlowState.DATA_ENTRY

    def authorize(self, secret: str):
        """
        Check the supervisor secret.

        Raises:
            AuthorizationError: If the secret is wrong or none is configured;
                the flow stays in AUTHORIZATION
        """
        self._expect(FlowState.AUTHORIZATION)
        if not self._secret:
            raise AuthorizationError("No authorization secret is configured for invoiced extras")
        if not hmac.compare_digest(str(secret).encode('utf-8'), self._secret.encode('utf-8')):
            logger.warning("Rejected authorization for an invoiced extra article")
            raise AuthorizationError("Incorrect authorization password")
        self.state = FlowState.DATA_ENTRY

    def submit(self, code: str, quantity: Any, expected_code: Optional[str] = None,
               name: str = '', notes: str = '') -> Incident:
        """
        Submit the form. On ValidationError the flow stays in DATA_ENTRY so
        the operator can correct the input.
        """
        self._expect(FlowState.DATA_ENTRY)
        incident = self.processor.create(
            self.incident_type, code, quantity,
            expected_code=expected_code, name=name, notes=notes,
            invoiced=self.invoiced if self.incident_type == IncidentType.EXTRA else None,
        )
        self.last_incident = incident
        self.state = FlowState.APPLIED
        return incident

    def cancel(self):
        if self.state != FlowState.IDLE:
            logger.debug(f"Incident flow cancelled from {self.state.value}")
        self._reset()
        self.state = FlowState.IDLE

    def _reset(self):
        self.incident_type = None
        self.invoiced = None

    def _expect(self, *states: FlowState):
        if self.state not in states:
            raise ReconcilerError(
                f"Incident flow is in state '{self.state.value}', "
                f"expected {' or '.join(s.value for s in states)}"
            )
