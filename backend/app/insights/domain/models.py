from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Sequence, Tuple, Union


@dataclass(frozen=True)
class MaterialSummary:
    total_requests: int
    pending_count: int
    urgent_pending_count: int
    approved_count: int
    fulfilled_count: int

    @classmethod
    def from_counts(cls, rows: Iterable[Tuple[str, str, int]]) -> "MaterialSummary":
        """Build a summary from (status, priority, count) rows."""
        total = pending = urgent_pending = approved = fulfilled = 0
        for status, priority, count in rows:
            total += count
            if status == "pending":
                pending += count
                if priority == "urgent":
                    urgent_pending += count
            elif status == "approved":
                approved += count
            elif status == "fulfilled":
                fulfilled += count
        return cls(
            total_requests=total,
            pending_count=pending,
            urgent_pending_count=urgent_pending,
            approved_count=approved,
            fulfilled_count=fulfilled,
        )

    @classmethod
    def from_requests(cls, requests: Iterable[Union[Mapping[str, Any], Any]]) -> "MaterialSummary":
        """Build a summary from request rows (dicts or objects with status/priority)."""
        rows = []
        for request in requests:
            if isinstance(request, Mapping):
                rows.append((request.get("status"), request.get("priority"), 1))
            else:
                rows.append((request.status, request.priority, 1))
        return cls.from_counts(rows)

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalRequests": self.total_requests,
            "pendingCount": self.pending_count,
            "urgentPendingCount": self.urgent_pending_count,
            "approvedCount": self.approved_count,
            "fulfilledCount": self.fulfilled_count,
        }


@dataclass(frozen=True)
class RequestLine:
    material_name: str
    quantity: float
    unit: str
    status: str
    priority: str


@dataclass(frozen=True)
class NarrativeInput:
    company_id: str
    summary: MaterialSummary
    requests: Sequence[RequestLine] = ()
