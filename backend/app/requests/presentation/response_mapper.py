import csv
import io
from typing import Any, Dict, Sequence

from app.requests.domain.models import MaterialRequest

CSV_HEADERS = [
    "Material",
    "Quantity",
    "Unit",
    "Status",
    "Priority",
    "Requested By",
    "Requested At",
    "Notes",
]


def format_quantity(quantity: float) -> str:
    if float(quantity).is_integer():
        return str(int(quantity))
    return str(quantity)


def material_request_to_response(request: MaterialRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "material_name": request.material_name,
        "quantity": request.quantity,
        "unit": request.unit,
        "status": request.status,
        "priority": request.priority,
        "notes": request.notes,
        "requested_by": request.requested_by,
        "company_id": request.company_id,
        "requested_at": request.requested_at.isoformat() if request.requested_at else None,
        "updated_at": request.updated_at.isoformat() if request.updated_at else None,
    }


def material_requests_to_csv(requests: Sequence[MaterialRequest]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADERS)
    for request in requests:
        writer.writerow([
            request.material_name,
            format_quantity(request.quantity),
            request.unit,
            request.status,
            request.priority,
            request.requested_by,
            request.requested_at.strftime("%b %d, %Y") if request.requested_at else "",
            request.notes or "",
        ])
    return output.getvalue()
