"""
Container Assignment Tracker - which box or rack each scanned unit went into.

Container barcodes are recognized through a small catalog (code -> type).
Scanning one opens a new ContainerInstance and makes it the active one;
accepted article scans are then written to the active container's manifest.

The tracker only records. It never decides whether a scan is accepted and has
no say in completion.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from code_normalizer import normalize_code
from exceptions import ReconcilerError, ValidationError
from logger import get_logger
from models import ContainerInstance

logger = get_logger(__name__)


class ContainerTracker:
    """
    Attributes:
        catalog (Dict[str, str]): Canonical container code -> container type
        instances (List[ContainerInstance]): Opened containers in order
        active_id (str | None): Instance receiving article scans
        awaiting_container (bool): Add-another mode; only container codes accepted
    """

    def __init__(self, catalog: Optional[Dict[str, str]] = None, prefix: str = "BOX"):
        self.catalog: Dict[str, str] = {}
        for code, container_type in (catalog or {}).items():
            self.register_type(code, container_type)
        self.prefix = prefix
        self.instances: List[ContainerInstance] = []
        self.active_id: Optional[str] = None
        self.awaiting_container = False

    def register_type(self, code: str, container_type: str):
        canonical = normalize_code(code)
        if not canonical:
            raise ValidationError("Container code is required")
        self.catalog[canonical] = container_type

    def is_container_code(self, code: str) -> bool:
        return normalize_code(code) in self.catalog

    @property
    def active(self) -> Optional[ContainerInstance]:
        return self.get(self.active_id) if self.active_id else None

    def get(self, instance_id: str) -> Optional[ContainerInstance]:
        for instance in self.instances:
            if instance.instance_id == instance_id:
                return instance
        return None

    def open(self, code: str) -> ContainerInstance:
        """
        Open a new container for a scanned container code and make it active.

        Raises:
            ValidationError: If the code is not in the catalog
        """
        canonical = normalize_code(code)
        if canonical not in self.catalog:
            raise ValidationError(f"{code} is not a known container code")

        instance = ContainerInstance(
            instance_id=f"{self.prefix}-{len(self.instances) + 1:04d}",
            container_type=self.catalog[canonical],
            source_code=canonical,
        )
        self.instances.append(instance)
        self.active_id = instance.instance_id
        self.awaiting_container = False
        logger.info(f"Container opened: {instance.instance_id} ({instance.container_type})")
        return instance

    def switch_to(self, instance_id: str):
        instance = self.get(instance_id)
        if instance is None:
            raise ValidationError(f"Unknown container {instance_id}")
        if instance.finalized:
            raise ReconcilerError(f"Container {instance_id} is finalized")
        self.active_id = instance_id
        logger.debug(f"Active container switched to {instance_id}")

    def begin_add_container(self):
        self.awaiting_container = True

    def cancel_add_container(self):
        self.awaiting_container = False

    def record(self, code: str, units: int) -> Optional[str]:
        """
        Add units of an article to the active container.

        Returns:
            The instance id written to, or None when no container is active
        """
        active = self.active
        if active is None:
            return None
        active.add(code, units)
        return active.instance_id

    def finalize_all(self):
        for instance in self.instances:
            instance.finalized = True
        self.awaiting_container = False

    def manifests(self) -> List[Dict[str, Any]]:
        return [instance.to_dict() for instance in self.instances]

    def restore(self, data: List[Dict[str, Any]], active_id: Optional[str] = None):
        self.instances = []
        for item in data:
            self.instances.append(ContainerInstance(
                instance_id=item['instance_id'],
                container_type=item['container_type'],
                source_code=item['source_code'],
                manifest={k: int(v) for k, v in item.get('manifest', {}).items()},
                scan_count=int(item.get('scan_count', 0)),
                opened_at=datetime.fromisoformat(item['opened_at']) if item.get('opened_at') else datetime.now(),
                finalized=bool(item.get('finalized', False)),
            ))
        self.active_id = active_id if active_id and self.get(active_id) else None
        self.awaiting_container = False
