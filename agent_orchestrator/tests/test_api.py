"""
Tests: HTTP API — identity headers, role matrix, error bodies and plan lint.

Run with:
    pytest agent_orchestrator/tests/test_api.py -v
"""

import copy

import pytest
from fastapi.testclient import TestClient

from agent_orchestrator.api import create_app
from agent_orchestrator.config import Settings
from agent_orchestrator.persistence.backends import MemoryBackend
from agent_orchestrator.persistence.requirement_store import RequirementStore


def _headers(role: str, agent_id: str = "agent-1") -> dict:
    return {"X-Agent-Role": role, "X-Agent-Id": agent_id}


PM = _headers("pm")
ARCHITECT = _headers("architect")
CODER = _headers("coder")
TESTER = _headers("tester")
SYSTEM = _headers("system")

SEED = {
    "requirements": [
        {"req_id": "REQ-1", "title": "Login", "priority": {"tier": "p1", "rank": 1}},
        {"req_id": "REQ-2", "title": "Export", "priority": {"tier": "p0", "rank": 1}},
    ]
}

PLAN = {
    "version": "1.0",
    "slices": [
        {
            "id": "REQ-1",
            "title": "Login",
            "priority": {"tier": "p0", "rank": 1},
            "direction": "Build login",
            "acceptance_criteria": ["a", "b", "c"],
            "out_of_scope": ["none"],
            "dependencies": [],
        }
    ],
}


@pytest.fixture
def settings(tmp_path):
    return Settings(mock_mode=True, requirements_file=str(tmp_path / "REQUIREMENTS.md"), default_top_limit=1)


@pytest.fixture
def client(settings):
    app = create_app(settings, RequirementStore(MemoryBackend()))
    with TestClient(app) as test_client:
        response = test_client.post("/v1/requirements/bulk", json=SEED, headers=PM)
        assert response.status_code == 200
        yield test_client


class TestHealth:
    def test_health_needs_no_identity(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["ok"] is True
        assert "timestamp" in response.json()


class TestIdentity:
    def test_missing_headers(self, client):
        response = client.get("/v1/requirements")
        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "unauthorized"
        assert body["message"] == "missing required headers"
        assert body["required_role"] == "pm|architect|coder|tester|system"

    def test_missing_agent_id(self, client):
        response = client.get("/v1/requirements", headers={"X-Agent-Role": "pm"})
        assert response.status_code == 401

    def test_invalid_role(self, client):
        response = client.get("/v1/requirements", headers=_headers("manager"))
        assert response.status_code == 401
        assert response.json()["message"] == "invalid role"
        assert response.json()["provided_role"] == "manager"

    def test_role_header_is_case_insensitive(self, client):
        assert client.get("/v1/requirements", headers=_headers("PM")).status_code == 200


class TestReads:
    def test_list(self, client):
        body = client.get("/v1/requirements", headers=TESTER).json()
        assert set(body["requirements"]) == {"REQ-1", "REQ-2"}
        assert body["requirements"]["REQ-1"]["sections"]["pm"]["decision"] == "pending"

    def test_get_normalizes_id(self, client):
        response = client.get("/v1/requirements/req-2", headers=CODER)
        assert response.status_code == 200
        assert response.json()["req_id"] == "REQ-2"

    def test_get_missing(self, client):
        response = client.get("/v1/requirements/REQ-99", headers=CODER)
        assert response.status_code == 404
        assert response.json()["error"] == "requirement_not_found"

    def test_top_default_limit(self, client):
        body = client.get("/v1/requirements/top", headers=ARCHITECT).json()
        assert [r["req_id"] for r in body] == ["REQ-2"]

    def test_top_with_limit(self, client):
        body = client.get("/v1/requirements/top/5", headers=ARCHITECT).json()
        assert [r["req_id"] for r in body] == ["REQ-2", "REQ-1"]

    @pytest.mark.parametrize("limit", ["0", "-1", "abc", "1.5", "+3", "1e1", "\u0663"])
    def test_invalid_limit(self, client, limit):
        response = client.get(f"/v1/requirements/top/{limit}", headers=ARCHITECT)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_limit"

    def test_audit_trail(self, client):
        body = client.get("/v1/requirements/REQ-1/audit", headers=PM).json()
        assert body["req_id"] == "REQ-1"
        assert [e["action"] for e in body["entries"]] == ["bulk_create"]
        assert body["entries"][0]["actor_role"] == "pm"

    def test_unknown_route(self, client):
        response = client.get("/v1/nothing", headers=PM)
        assert response.status_code == 404
        assert response.json() == {"error": "not_found"}


class TestRoleMatrix:
    SECTION_BODIES = {
        "pm": {"section": {"status": "in_progress", "direction": "d", "feedback": "", "decision": "pending"}},
        "architecture": {"section": {"status": "complete", "design_spec": "spec"}},
        "engineering": {"section": {"status": "in_progress", "implementation_notes": "n", "pr": None}},
        "qa": {"section": {"status": "unaddressed", "test_plan": "plan"}},
    }
    OWNERS = {"pm": PM, "architecture": ARCHITECT, "engineering": CODER, "qa": TESTER}

    @pytest.mark.parametrize("section", ["pm", "architecture", "engineering", "qa"])
    def test_owner_may_write(self, client, section):
        response = client.put(
            f"/v1/requirements/REQ-1/{section}",
            json=self.SECTION_BODIES[section],
            headers=self.OWNERS[section],
        )
        assert response.status_code == 200

    @pytest.mark.parametrize("section", ["pm", "architecture", "engineering", "qa"])
    def test_others_may_not(self, client, section):
        for name, headers in self.OWNERS.items():
            if name == section:
                continue
            response = client.put(
                f"/v1/requirements/REQ-1/{section}",
                json=self.SECTION_BODIES[section],
                headers=headers,
            )
            assert response.status_code == 401
            assert response.json()["required_role"] == self.OWNERS[section]["X-Agent-Role"]

    def test_wrong_role_rejected_before_body_read(self, client):
        response = client.put("/v1/requirements/REQ-1/architecture", content=b"{broken", headers=CODER)
        assert response.status_code == 401

    def test_bulk_is_pm_only(self, client):
        response = client.post("/v1/requirements/bulk", json=SEED, headers=CODER)
        assert response.status_code == 401

    def test_status_is_pm_only(self, client):
        response = client.put("/v1/requirements/REQ-1/status", json={"overall_status": "blocked"}, headers=TESTER)
        assert response.status_code == 401

    def test_unknown_section(self, client):
        response = client.put("/v1/requirements/REQ-1/security", json={}, headers=PM)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestWrites:
    def test_section_update_persists(self, client):
        client.put(
            "/v1/requirements/REQ-1/architecture",
            json={"section": {"status": "complete", "design_spec": "Use events"}},
            headers=ARCHITECT,
        )
        body = client.get("/v1/requirements/REQ-1", headers=PM).json()
        assert body["sections"]["architect"]["design_spec"] == "Use events"

    def test_invalid_body(self, client):
        response = client.put(
            "/v1/requirements/REQ-1/architecture",
            json={"section": {"status": "finished", "design_spec": "x"}},
            headers=ARCHITECT,
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_body"
        assert body["details"][0]["path"] == "/section/status"

    def test_malformed_json(self, client):
        response = client.put(
            "/v1/requirements/REQ-1/architecture",
            content=b"{broken",
            headers={**ARCHITECT, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_body"

    def test_update_missing_requirement(self, client):
        response = client.put(
            "/v1/requirements/REQ-9/architecture",
            json={"section": {"status": "complete", "design_spec": "x"}},
            headers=ARCHITECT,
        )
        assert response.status_code == 404

    def test_priority_conflict(self, client):
        body = copy.deepcopy(TestRoleMatrix.SECTION_BODIES["pm"])
        body["priority"] = {"tier": "p0", "rank": 1}
        response = client.put("/v1/requirements/REQ-1/pm", json=body, headers=PM)
        assert response.status_code == 400
        assert response.json()["error"] == "priority_conflict"

    def test_status_update(self, client):
        response = client.put("/v1/requirements/REQ-1/status", json={"overall_status": "in_review"}, headers=PM)
        assert response.status_code == 200
        assert response.json()["overall_status"] == "in_review"

    def test_bulk_duplicate_id(self, client):
        payload = {
            "requirements": [
                {"req_id": "REQ-5", "title": "a", "priority": {"tier": "p2", "rank": 1}},
                {"req_id": "REQ-5", "title": "b", "priority": {"tier": "p2", "rank": 2}},
            ]
        }
        response = client.post("/v1/requirements/bulk", json=payload, headers=PM)
        assert response.status_code == 400
        assert response.json()["error"] == "duplicate_requirement_id"
        assert "REQ-5" not in client.get("/v1/requirements", headers=PM).json()["requirements"]


class TestSync:
    def test_sync_from_file(self, client, settings):
        with open(settings.requirements_file, "w", encoding="utf-8") as f:
            f.write("- REQ-3: Reporting\n- REQ-1: Login v2\n")
        response = client.post("/v1/requirements/sync", headers=SYSTEM)
        assert response.status_code == 200
        requirements = response.json()["requirements"]
        assert set(requirements) == {"REQ-1", "REQ-2", "REQ-3"}
        assert requirements["REQ-1"]["title"] == "Login v2"

    def test_sync_missing_file(self, client):
        response = client.post("/v1/requirements/sync", headers=SYSTEM)
        assert response.status_code == 400
        assert response.json()["error"] == "requirements_file_missing"

    def test_sync_is_system_only(self, client):
        assert client.post("/v1/requirements/sync", headers=PM).status_code == 401


class TestPlanLint:
    def test_clean_plan(self, client):
        response = client.post("/v1/plan/lint", json={"plan": PLAN})
        assert response.status_code == 200
        assert response.json()["ok"] is True

    def test_findings_still_200(self, client):
        plan = copy.deepcopy(PLAN)
        plan["slices"][0]["acceptance_criteria"] = ["only one"]
        response = client.post("/v1/plan/lint", json={"plan": plan})
        assert response.status_code == 200
        assert [e["code"] for e in response.json()["errors"]] == ["P-007"]

    def test_malformed_body_is_a_shape_finding(self, client):
        response = client.post("/v1/plan/lint", content=b"not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is False
        assert body["errors"][0]["code"] == "P-SHAPE"
