import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from app.common.errors import NotFound, ValidationError
from app.insights.domain.models import MaterialSummary
from app.requests.application.ports import MaterialRequestRepository
from app.requests.domain.models import (
    MUTABLE_FIELDS,
    PRIORITIES,
    STATUSES,
    MaterialRequest,
    Principal,
    RequestFilters,
    RequestPatch,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateMaterialRequestCommand:
    material_name: str
    quantity: float
    unit: str
    priority: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class ListMaterialRequestsQuery:
    status: Optional[str] = None
    limit: int = 50
    offset: int = 0


IdGenerator = Callable[[], str]
Clock = Callable[[], datetime]


def require_company(principal: Principal) -> str:
    if not principal.company_id:
        raise NotFound("Profile or company not found")
    return principal.company_id


def _validate_text(field_name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


def _validate_quantity(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("quantity must be a number")
    if value <= 0:
        raise ValidationError("Quantity must be positive")
    return value


def _validate_choice(field_name: str, value: Any, choices: Sequence[str]) -> str:
    if value not in choices:
        raise ValidationError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


def validate_patch(patch: RequestPatch) -> RequestPatch:
    """Check a partial update and return it with normalized values."""
    if not patch:
        raise ValidationError("Update must contain at least one field")

    immutable = sorted(set(patch) - MUTABLE_FIELDS)
    if immutable:
        raise ValidationError(f"Fields cannot be updated: {', '.join(immutable)}")

    cleaned: RequestPatch = {}
    for field_name, value in patch.items():
        if field_name in ("material_name", "unit"):
            cleaned[field_name] = _validate_text(field_name, value)
        elif field_name == "quantity":
            cleaned[field_name] = _validate_quantity(value)
        elif field_name == "status":
            cleaned[field_name] = _validate_choice("status", value, STATUSES)
        elif field_name == "priority":
            cleaned[field_name] = _validate_choice("priority", value, PRIORITIES)
        else:
            cleaned[field_name] = value
    return cleaned


class CreateMaterialRequestUseCase:
    def __init__(
        self,
        repository: MaterialRequestRepository,
        id_generator: IdGenerator,
        clock: Clock,
    ) -> None:
        self._repository = repository
        self._id_generator = id_generator
        self._clock = clock

    async def execute(
        self,
        command: CreateMaterialRequestCommand,
        principal: Principal,
    ) -> MaterialRequest:
        company_id = require_company(principal)

        now = self._clock()
        request = MaterialRequest(
            id=self._id_generator(),
            material_name=_validate_text("material_name", command.material_name),
            quantity=_validate_quantity(command.quantity),
            unit=_validate_text("unit", command.unit),
            status="pending",
            priority=_validate_choice("priority", command.priority, PRIORITIES),
            notes=command.notes or None,
            requested_by=principal.id,
            requested_at=now,
            updated_at=now,
            company_id=company_id,
        )

        await self._repository.add_request(request)
        await self._repository.commit()
        logger.info(f"Material request {request.id} created for company {company_id}")

        return request


class ListMaterialRequestsUseCase:
    def __init__(
        self,
        repository: MaterialRequestRepository,
        max_limit: int = 200,
    ) -> None:
        self._repository = repository
        self._max_limit = max_limit

    async def execute(
        self,
        query: ListMaterialRequestsQuery,
        principal: Principal,
    ) -> Sequence[MaterialRequest]:
        company_id = require_company(principal)

        status = query.status
        if status == "all":
            status = None
        if status is not None:
            _validate_choice("status", status, STATUSES)

        filters = RequestFilters(
            company_id=company_id,
            status=status,
            limit=max(1, min(query.limit, self._max_limit)),
            offset=max(0, query.offset),
        )
        return await self._repository.list_requests(filters)


class GetMaterialRequestUseCase:
    def __init__(self, repository: MaterialRequestRepository) -> None:
        self._repository = repository

    async def execute(self, request_id: str, principal: Principal) -> MaterialRequest:
        company_id = require_company(principal)
        request = await self._repository.get_request(request_id, company_id)
        if request is None:
            raise NotFound("Material request not found")
        return request


class UpdateMaterialRequestUseCase:
    def __init__(self, repository: MaterialRequestRepository, clock: Clock) -> None:
        self._repository = repository
        self._clock = clock

    async def execute(
        self,
        request_id: str,
        patch: RequestPatch,
        principal: Principal,
    ) -> MaterialRequest:
        company_id = require_company(principal)
        cleaned = validate_patch(patch)

        updated = await self._repository.update_request(
            request_id, company_id, cleaned, self._clock()
        )
        if updated is None:
            raise NotFound("Material request not found")

        await self._repository.commit()
        logger.info(f"Material request {request_id} updated: {sorted(cleaned)}")
        return updated


class SummarizeMaterialRequestsUseCase:
    def __init__(self, repository: MaterialRequestRepository) -> None:
        self._repository = repository

    async def execute(self, principal: Principal) -> MaterialSummary:
        company_id = require_company(principal)
        rows = await self._repository.count_by_status(company_id)
        return MaterialSummary.from_counts(rows)
