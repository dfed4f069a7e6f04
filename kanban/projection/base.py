"""
Projection contracts.

Every strategy returns a list of KanbanItem; every fetch returns a FetchResult;
every write returns a WriteResult. The engine wraps the final list in a
ProjectionResult so callers always get (data, error) and never an exception.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional


class FetchError(Exception):
    """A snapshot read failed; the projection for this call cannot be built."""


@dataclass(frozen=True)
class PipelineInfo:
    """A pipeline plus the kind flags derived from its name."""
    id: str
    name: str
    is_quality: bool = False
    is_front_desk: bool = False
    is_courier: bool = False
    is_department: bool = False
    is_sales: bool = False


@dataclass
class KanbanTag:
    id: str
    name: str
    color: str = 'gray'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class KanbanItem:
    """
    One card on the board. Never persisted.

    is_virtual: the card has no persisted placement at `stage_id` (it is
    materialized for display only). read_only: the board must not allow a
    drag for this card, because its stage is derived from another pipeline.
    """
    id: str
    entity_type: str
    pipeline_id: str
    stage_id: Optional[str]
    stage: str = ''
    name: str = ''
    email: Optional[str] = None
    phone: Optional[str] = None
    pipeline_name: Optional[str] = None
    placement_id: Optional[str] = None
    lead_id: Optional[str] = None
    tags: List[KanbanTag] = field(default_factory=list)
    technician: Optional[str] = None
    technician2: Optional[str] = None
    technician3: Optional[str] = None
    technician_id: Optional[str] = None
    total: float = 0.0
    estimated_time: float = 0.0
    read_only: bool = False
    is_virtual: bool = False
    created_at: Optional[datetime] = None
    stage_moved_at: Optional[datetime] = None
    service_order_number: Optional[str] = None
    service_order_status: Optional[str] = None
    tray_number: Optional[str] = None
    tray_numbers: List[str] = field(default_factory=list)
    tray_status: Optional[str] = None
    is_split_child: bool = False
    callback_date: Optional[datetime] = None
    no_answer_callback_at: Optional[datetime] = None
    annotations: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict; datetimes become ISO strings."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        data['annotations'] = {
            k: (v.isoformat() if isinstance(v, datetime) else v)
            for k, v in self.annotations.items()
        }
        return data


@dataclass
class FetchResult:
    """Output of one snapshot read. error is set instead of raising."""
    data: Any
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def data_or_raise(self):
        if self.error is not None:
            raise FetchError(self.error)
        return self.data


@dataclass
class WriteError:
    entity_id: str
    message: str


@dataclass
class WriteResult:
    """Outcome of a corrective write. Partial success is normal."""
    succeeded: List[str] = field(default_factory=list)
    errors: List[WriteError] = field(default_factory=list)
    created: List[Dict[str, Any]] = field(default_factory=list)
    used_fallback: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors

    def merge(self, other: 'WriteResult') -> 'WriteResult':
        self.succeeded.extend(other.succeeded)
        self.errors.extend(other.errors)
        self.created.extend(other.created)
        return self


@dataclass
class ProjectionResult:
    """What callers of the engine get: data plus an error string, never an exception."""
    data: Any
    error: Optional[str] = None
