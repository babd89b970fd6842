from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

STATUSES = ("pending", "approved", "rejected", "fulfilled")
PRIORITIES = ("low", "medium", "high", "urgent")

MUTABLE_FIELDS = frozenset(
    {"material_name", "quantity", "unit", "status", "priority", "notes"}
)


@dataclass(frozen=True)
class Principal:
    id: str
    email: str
    company_id: Optional[str]
    full_name: Optional[str] = None


@dataclass(frozen=True)
class MaterialRequest:
    id: str
    material_name: str
    quantity: float
    unit: str
    status: str
    priority: str
    requested_by: str
    requested_at: datetime
    company_id: str
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class RequestFilters:
    company_id: str
    status: Optional[str] = None
    limit: int = 50
    offset: int = 0


# Field name -> new value, restricted to MUTABLE_FIELDS
RequestPatch = Dict[str, Any]
