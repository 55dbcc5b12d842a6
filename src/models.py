"""
Data model for reconciled documents.

A document (header plus LineRegistry) owns its Lines; a Line has no identity
outside the document it was loaded with. Containers and incidents are tracked
next to the lines by the engine.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from exceptions import ReconcilerError


class IncidentType(str, Enum):
    EXTRA = "extra"
    CHANGED = "changed"
    MISSING = "missing"
    RETURN = "return"


@dataclass
class Line:
    """
    One expected article on a document.

    Attributes:
        code: Canonical article code
        alternate_code: Canonical secondary barcode, "" if none
        required: Target quantity; grows on elastic accepts, changed by incidents
        packed: Physically placed count (manual buttons, or scans when they move it)
        scanned: Scan-verified count
        note: Audit annotation written by incidents
        name: Article description
        unit: Unit of measure as reported by the backend
        article_id: Backend article id, used by inner-pack codes
        returned: Units excluded from the requirement by a return incident
    """
    code: str
    required: int
    alternate_code: str = ''
    packed: int = 0
    scanned: int = 0
    note: str = ''
    name: str = ''
    unit: Optional[str] = None
    article_id: Optional[int] = None
    returned: int = 0

    @property
    def target(self) -> int:
        """Quantity that still has to be accounted for."""
        return max(self.required - self.returned, 0)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DocumentHeader:
    folio: str
    document_id: Optional[int] = None
    origin: str = ''
    destination: str = ''
    operator: str = ''
    warehouse: str = ''


@dataclass(frozen=True)
class Incident:
    """
    Immutable operator-declared exception against one line.

    For CHANGED incidents, code is the article that arrived and expected_code
    the line it stands in for.
    """
    incident_id: str
    incident_type: IncidentType
    code: str
    quantity: int
    expected_code: Optional[str] = None
    name: str = ''
    expected_name: str = ''
    notes: str = ''
    invoiced: Optional[bool] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['incident_type'] = self.incident_type.value
        data['timestamp'] = self.timestamp.isoformat()
        return data


@dataclass
class ContainerInstance:
    """
    A physical box or rack opened during a receiving / packing session.

    Attributes:
        instance_id: Stable identity within the session (e.g. "BOX-0002")
        container_type: Type resolved from the scanned container code
        source_code: Canonical code that was scanned to open it
        manifest: Article code -> units placed in this container
        scan_count: Number of article scans attributed to it
        opened_at: When it was opened
        finalized: Set when the parent document is finalized
    """
    instance_id: str
    container_type: str
    source_code: str
    manifest: Dict[str, int] = field(default_factory=dict)
    scan_count: int = 0
    opened_at: datetime = field(default_factory=datetime.now)
    finalized: bool = False

    def add(self, code: str, units: int):
        if self.finalized:
            raise ReconcilerError(f"Container {self.instance_id} is finalized and cannot be changed")
        self.manifest[code] = self.manifest.get(code, 0) + units
        self.scan_count += 1

    @property
    def total_units(self) -> int:
        return sum(self.manifest.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'instance_id': self.instance_id,
            'container_type': self.container_type,
            'source_code': self.source_code,
            'manifest': dict(self.manifest),
            'scan_count': self.scan_count,
            'opened_at': self.opened_at.isoformat(),
            'finalized': self.finalized,
        }
