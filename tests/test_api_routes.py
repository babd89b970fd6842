"""
API tests for the material requests and risk insight routes
Database and text-generation provider are replaced through dependency overrides
"""
import asyncio
import csv
import io
from dataclasses import replace
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from app.common.errors import UpstreamProviderError
from app.requests.domain.models import MaterialRequest, Principal
from database import get_postgres_session
from routes.auth_routes import create_access_token, decode_access_token, get_current_principal
from routes.insights_routes import get_delivery_mode, get_text_generation_provider
from routes.requests_routes import get_material_request_repository
from server import app

PRINCIPAL = Principal(id="user-1", email="site@example.com", company_id="company-1")

SUMMARY = {
    "totalRequests": 15,
    "pendingCount": 6,
    "urgentPendingCount": 2,
    "approvedCount": 5,
    "fulfilledCount": 4,
}


class InMemoryRepository:
    def __init__(self):
        self.requests = {}
        self.commits = 0

    async def add_request(self, request):
        self.requests[request.id] = request

    async def get_request(self, request_id, company_id):
        request = self.requests.get(request_id)
        if request is None or request.company_id != company_id:
            return None
        return request

    async def list_requests(self, filters):
        rows = [
            r for r in self.requests.values()
            if r.company_id == filters.company_id and (filters.status is None or r.status == filters.status)
        ]
        rows.sort(key=lambda r: r.requested_at, reverse=True)
        return rows[filters.offset:filters.offset + filters.limit]

    async def update_request(self, request_id, company_id, patch, updated_at):
        request = await self.get_request(request_id, company_id)
        if request is None:
            return None
        updated = replace(request, updated_at=updated_at, **patch)
        self.requests[request_id] = updated
        return updated

    async def count_by_status(self, company_id):
        counts = {}
        for r in self.requests.values():
            if r.company_id == company_id:
                counts[(r.status, r.priority)] = counts.get((r.status, r.priority), 0) + 1
        return [(status, priority, count) for (status, priority), count in counts.items()]

    async def commit(self):
        self.commits += 1


class RecordingProvider:
    def __init__(self, fragments=("### Summary\n", "**6** pending.\n"), error=None, fail_at=None):
        self.fragments = list(fragments)
        self.error = error
        self.fail_at = fail_at
        self.prompts = []
        self.closed = False

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return "".join(self.fragments)

    def stream(self, prompt):
        self.prompts.append(prompt)
        return self._fragments()

    async def _fragments(self):
        try:
            for index, fragment in enumerate(self.fragments):
                if self.error is not None and index == self.fail_at:
                    raise self.error
                await asyncio.sleep(0)
                yield fragment
        finally:
            self.closed = True


def stored(**overrides):
    fields = dict(
        id="req-1",
        material_name="Cement",
        quantity=50.0,
        unit="bags",
        status="pending",
        priority="urgent",
        requested_by="user-1",
        requested_at=datetime(2026, 1, 5, 8, 0, 0),
        updated_at=datetime(2026, 1, 5, 8, 0, 0),
        company_id="company-1",
    )
    fields.update(overrides)
    return MaterialRequest(**fields)


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def provider():
    return RecordingProvider()


@pytest.fixture
def client(repository, provider):
    app.dependency_overrides[get_current_principal] = lambda: PRINCIPAL
    app.dependency_overrides[get_material_request_repository] = lambda: repository
    app.dependency_overrides[get_text_generation_provider] = lambda: provider
    app.dependency_overrides[get_delivery_mode] = lambda: "stream"
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthCheck:
    def test_root_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAuthentication:
    def test_token_round_trip(self):
        token = create_access_token({"sub": "user-1"})
        assert decode_access_token(token) == "user-1"

    def test_missing_token_is_401(self):
        async def no_session():
            yield None

        app.dependency_overrides[get_postgres_session] = no_session
        try:
            response = TestClient(app).get("/api/material-requests")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 401
        assert response.json()["detail"] == "User not authenticated"

    def test_invalid_token_is_401(self):
        async def no_session():
            yield None

        app.dependency_overrides[get_postgres_session] = no_session
        try:
            response = TestClient(app).get(
                "/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 401


class TestMaterialRequests:
    def test_create_sets_pending_and_company(self, client, repository):
        response = client.post("/api/material-requests", json={
            "material_name": "Cement",
            "quantity": 50,
            "unit": "bags",
            "priority": "urgent",
            "notes": "Site A",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["company_id"] == "company-1"
        assert data["requested_by"] == "user-1"
        assert data["requested_at"] is not None
        assert data["id"] in repository.requests

    def test_create_ignores_client_supplied_company(self, client, repository):
        response = client.post("/api/material-requests", json={
            "material_name": "Sand",
            "quantity": 2,
            "unit": "t",
            "company_id": "company-2",
            "status": "approved",
        })

        assert response.status_code == 201
        assert response.json()["company_id"] == "company-1"
        assert response.json()["status"] == "pending"

    def test_create_rejects_non_positive_quantity(self, client, repository):
        response = client.post("/api/material-requests", json={
            "material_name": "Sand", "quantity": 0, "unit": "t", "priority": "low",
        })

        assert response.status_code == 400
        assert repository.requests == {}

    def test_list_is_newest_first_and_company_scoped(self, client, repository):
        repository.requests["old"] = stored(id="old", requested_at=datetime(2026, 1, 1))
        repository.requests["new"] = stored(id="new", requested_at=datetime(2026, 1, 9))
        repository.requests["foreign"] = stored(id="foreign", company_id="company-2")

        response = client.get("/api/material-requests")

        assert response.status_code == 200
        assert [r["id"] for r in response.json()] == ["new", "old"]

    def test_list_filters_by_status(self, client, repository):
        repository.requests["a"] = stored(id="a", status="pending")
        repository.requests["b"] = stored(id="b", status="approved")

        assert [r["id"] for r in client.get("/api/material-requests?status=approved").json()] == ["b"]
        assert len(client.get("/api/material-requests?status=all").json()) == 2
        assert client.get("/api/material-requests?status=shipped").status_code == 400

    def test_update_status_any_transition(self, client, repository):
        repository.requests["req-1"] = stored(status="rejected")

        response = client.patch("/api/material-requests/req-1", json={"status": "fulfilled"})

        assert response.status_code == 200
        assert response.json()["status"] == "fulfilled"
        assert response.json()["updated_at"] != "2026-01-05T08:00:00"

    def test_update_other_company_is_404(self, client, repository):
        repository.requests["req-1"] = stored(company_id="company-2")

        response = client.patch("/api/material-requests/req-1", json={"status": "approved"})

        assert response.status_code == 404
        assert repository.requests["req-1"].status == "pending"

    def test_update_rejects_immutable_fields(self, client, repository):
        repository.requests["req-1"] = stored()

        response = client.patch("/api/material-requests/req-1", json={"requested_by": "user-9"})

        assert response.status_code == 422

    def test_update_rejects_bad_priority(self, client, repository):
        repository.requests["req-1"] = stored()

        response = client.patch("/api/material-requests/req-1", json={"priority": "critical"})

        assert response.status_code == 400

    def test_get_single_request(self, client, repository):
        repository.requests["req-1"] = stored()

        assert client.get("/api/material-requests/req-1").json()["material_name"] == "Cement"
        assert client.get("/api/material-requests/missing").status_code == 404

    def test_summary(self, client, repository):
        repository.requests["a"] = stored(id="a", status="pending", priority="urgent")
        repository.requests["b"] = stored(id="b", status="pending", priority="low")
        repository.requests["c"] = stored(id="c", status="approved")
        repository.requests["d"] = stored(id="d", status="fulfilled")

        assert client.get("/api/material-requests/summary").json() == {
            "totalRequests": 4,
            "pendingCount": 2,
            "urgentPendingCount": 1,
            "approvedCount": 1,
            "fulfilledCount": 1,
        }

    def test_export_csv(self, client, repository):
        repository.requests["req-1"] = stored(notes=None)

        response = client.get("/api/material-requests/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=material-requests-" in response.headers["content-disposition"]
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == [
            "Material", "Quantity", "Unit", "Status", "Priority",
            "Requested By", "Requested At", "Notes",
        ]
        assert rows[1] == ["Cement", "50", "bags", "pending", "urgent", "user-1", "Jan 05, 2026", ""]


class TestRiskInsight:
    def test_missing_summary_never_calls_provider(self, client, provider):
        response = client.post("/api/risk-insight", json={"companyId": "company-1"})

        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to generate insights",
            "details": "Summary data is missing",
        }
        assert provider.prompts == []

    @pytest.mark.parametrize("method", ["get", "put", "delete"])
    def test_non_post_is_405(self, client, provider, method):
        response = getattr(client, method)("/api/risk-insight")

        assert response.status_code == 405
        assert provider.prompts == []

    def test_stream_mode_relays_fragments(self, client, provider):
        response = client.post("/api/risk-insight", json={"companyId": "company-1", "summary": SUMMARY})

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/plain; charset=utf-8"
        assert response.text == "### Summary\n**6** pending.\n"
        assert provider.closed is True
        assert "No individual request data available." in provider.prompts[0].user

    def test_stream_mode_renders_requests(self, client, provider):
        client.post("/api/risk-insight", json={
            "companyId": "company-1",
            "summary": SUMMARY,
            "requests": [{
                "material_name": "Cement", "quantity": 50, "unit": "bags",
                "status": "pending", "priority": "urgent",
            }],
        })

        assert "- Cement: 50 bags (pending, urgent)" in provider.prompts[0].user

    def test_stream_failure_before_first_fragment_is_500(self, client, provider):
        provider.error = UpstreamProviderError("Invalid API Key")
        provider.fail_at = 0

        response = client.post("/api/risk-insight", json={"companyId": "company-1", "summary": SUMMARY})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to generate insights", "details": "Invalid API Key"}

    def test_stream_failure_mid_stream_terminates_body(self, client, provider):
        provider.error = UpstreamProviderError("connection reset")
        provider.fail_at = 1

        response = client.post("/api/risk-insight", json={"companyId": "company-1", "summary": SUMMARY})

        assert response.status_code == 200
        assert response.text == "### Summary\n"
        assert provider.closed is True

    def test_buffered_mode_returns_whole_text(self, client, provider):
        app.dependency_overrides[get_delivery_mode] = lambda: "buffered"

        response = client.post("/api/risk-insight", json={"companyId": "company-1", "summary": SUMMARY})

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/plain; charset=utf-8"
        assert response.text == "### Summary\n**6** pending.\n"

    def test_buffered_mode_failure_is_500_json(self, client, provider):
        app.dependency_overrides[get_delivery_mode] = lambda: "buffered"
        provider.error = UpstreamProviderError("model overloaded")

        response = client.post("/api/risk-insight", json={"companyId": "company-1", "summary": SUMMARY})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to generate insights", "details": "model overloaded"}
