"""
Tests: Requirement store over the in-memory backend.

Run with:
    pytest agent_orchestrator/tests/test_requirement_store.py -v
"""

import asyncio
import json

import pytest
from agent_orchestrator.models.schemas import AuditActor, PriorityKey, Requirement
from agent_orchestrator.persistence.backends import LEGACY_STATE_KEY, MemoryBackend
from agent_orchestrator.persistence.requirement_store import (
    RequirementStore,
    composite_priority_score,
    legacy_priority_score,
)

PM = AuditActor(role="pm", id="pm-1")


def _requirement(req_id: str, tier: str = "p0", rank: int = 1, title: str = "") -> Requirement:
    return Requirement.new(req_id, title or f"Requirement {req_id}", PriorityKey(tier=tier, rank=rank))


def _store(scoring: str = "composite") -> tuple[RequirementStore, MemoryBackend]:
    backend = MemoryBackend()
    return RequirementStore(backend, scoring=scoring), backend


class TestScoring:
    def test_composite_orders_tier_before_rank(self):
        assert composite_priority_score(PriorityKey(tier="p0", rank=500)) < composite_priority_score(
            PriorityKey(tier="p1", rank=1)
        )

    def test_composite_unassigned_sorts_last(self):
        assert composite_priority_score(PriorityKey()) > composite_priority_score(PriorityKey(tier="p2", rank=10**11))

    def test_legacy_collides_across_tiers(self):
        assert legacy_priority_score(PriorityKey(tier="p0", rank=2)) == legacy_priority_score(
            PriorityKey(tier="p1", rank=1)
        )

    def test_unknown_scoring_rejected(self):
        with pytest.raises(ValueError):
            RequirementStore(MemoryBackend(), scoring="alphabetical")


class TestReadWrite:
    def test_round_trip(self):
        store, _ = _store()

        async def scenario():
            await store.save(_requirement("REQ-1"), PM, "bulk_create")
            return await store.get("REQ-1")

        fetched = asyncio.run(scenario())
        assert fetched == _requirement("REQ-1")

    def test_get_missing_is_none(self):
        store, _ = _store()
        assert asyncio.run(store.get("REQ-404")) is None

    def test_list_is_keyed_by_id(self):
        store, _ = _store()

        async def scenario():
            await store.save(_requirement("REQ-2", rank=2), PM, "bulk_create")
            await store.save(_requirement("REQ-1", rank=1), PM, "bulk_create")
            return await store.list()

        listed = asyncio.run(scenario())
        assert list(listed) == ["REQ-1", "REQ-2"]
        assert listed["REQ-2"].priority.rank == 2

    def test_corrupt_record_reads_as_missing(self):
        store, backend = _store()

        async def scenario():
            await store.save(_requirement("REQ-1"), PM, "bulk_create")
            backend.put_document("REQ-1", "{not json")
            return await store.get("REQ-1"), await store.list()

        fetched, listed = asyncio.run(scenario())
        assert fetched is None
        assert listed == {}

    def test_status_sets_are_exclusive(self):
        store, backend = _store()

        async def scenario():
            requirement = _requirement("REQ-1")
            await store.save(requirement, PM, "bulk_create")
            updated = requirement.model_copy(update={"overall_status": "in_progress"})
            await store.save(updated, PM, "update_status", previous=requirement)
            return (
                await backend.status_members("not_started"),
                await backend.status_members("in_progress"),
            )

        not_started, in_progress = asyncio.run(scenario())
        assert "REQ-1" not in not_started
        assert in_progress == {"REQ-1"}


class TestTop:
    def _seed(self, store):
        async def scenario():
            await store.save(_requirement("REQ-1", "p1", 1), PM, "bulk_create")
            await store.save(_requirement("REQ-2", "p0", 2), PM, "bulk_create")
            await store.save(_requirement("REQ-3", "p0", 1), PM, "bulk_create")
            await store.save(_requirement("REQ-4", "", 0), PM, "bulk_create")
        asyncio.run(scenario())

    def test_composite_order(self):
        store, _ = _store()
        self._seed(store)
        top = asyncio.run(store.list_top(10))
        assert [r.req_id for r in top] == ["REQ-3", "REQ-2", "REQ-1", "REQ-4"]

    def test_legacy_order_ties_by_member(self):
        store, _ = _store("legacy")
        self._seed(store)
        top = asyncio.run(store.list_top(10))
        # scores: REQ-4 → 0, REQ-3 → 1, REQ-1/REQ-2 → 2
        assert [r.req_id for r in top] == ["REQ-4", "REQ-3", "REQ-1", "REQ-2"]

    def test_limit(self):
        store, _ = _store()
        self._seed(store)
        assert [r.req_id for r in asyncio.run(store.list_top(2))] == ["REQ-3", "REQ-2"]

    def test_non_positive_limit_returns_one(self):
        store, _ = _store()
        self._seed(store)
        assert len(asyncio.run(store.list_top(0))) == 1


class TestAudit:
    def test_each_save_appends_one_entry(self):
        store, _ = _store()

        async def scenario():
            requirement = _requirement("REQ-1")
            await store.save(requirement, PM, "bulk_create")
            await store.save(requirement, AuditActor(role="architect", id="a-7"), "update_architect")
            await store.save(_requirement("REQ-2", rank=2), PM, "bulk_create")
            return await store.audit_trail("REQ-1")

        trail = asyncio.run(scenario())
        assert [e.action for e in trail] == ["bulk_create", "update_architect"]
        assert trail[1].actor_role == "architect"
        assert trail[1].actor_id == "a-7"
        assert trail[0].outcome == "success"
        assert json.loads(trail[0].details) == {
            "overall_status": "not_started",
            "priority": {"tier": "p0", "rank": 1},
        }


class TestMigration:
    LEGACY_BLOB = {
        "requirements": {
            "REQ-1": {
                "id": "REQ-1",
                "title": "Legacy",
                "priority": {"tier": "p0", "rank": 1},
                "status": "done",
                "pm": {"direction": "d"},
                "architecture": {"design_spec": "s"},
            },
            "REQ-2": {"title": "No sections", "status": "ready_for_pm_review"},
        }
    }

    def test_migrates_legacy_blob_on_first_read(self):
        store, backend = _store()
        backend.put_document(LEGACY_STATE_KEY, json.dumps(self.LEGACY_BLOB))

        async def scenario():
            return await store.get("REQ-1"), await store.list(), await backend.read_audit()

        first, listed, audit = asyncio.run(scenario())
        assert first.overall_status == "completed"
        assert first.sections.pm.direction == "d"
        assert first.sections.architect.design_spec == "s"
        assert set(listed) == {"REQ-1", "REQ-2"}
        assert listed["REQ-2"].overall_status == "in_review"
        assert {e["action"] for e in audit} == {"migrate"}
        assert {e["actor_role"] for e in audit} == {"system"}

    def test_migration_runs_once(self):
        store, backend = _store()
        backend.put_document(LEGACY_STATE_KEY, json.dumps(self.LEGACY_BLOB))

        async def scenario():
            await store.list()
            await store.list()
            return await store.migrate_legacy_state(), await backend.read_audit()

        migrated_again, audit = asyncio.run(scenario())
        assert migrated_again == 0
        assert len(audit) == 2

    def test_no_migration_when_store_populated(self):
        store, backend = _store()

        async def scenario():
            await store.save(_requirement("REQ-9"), PM, "bulk_create")
            backend.put_document(LEGACY_STATE_KEY, json.dumps(self.LEGACY_BLOB))
            return await store.list()

        assert list(asyncio.run(scenario())) == ["REQ-9"]

    def test_garbage_blob_is_ignored(self):
        store, backend = _store()
        backend.put_document(LEGACY_STATE_KEY, "not json")
        assert asyncio.run(store.list()) == {}

    def test_migration_keeps_records_with_rough_nested_values(self):
        store, backend = _store()
        blob = {
            "requirements": {
                "REQ-1": {
                    "id": "REQ-1",
                    "title": "Rough",
                    "status": "open",
                    "engineering": {"implementation_notes": "n", "pr": {"number": 2, "url": "nope"}},
                    "qa": {"test_cases": [{"id": "1", "title": "t"}], "test_results": "green"},
                }
            }
        }
        backend.put_document(LEGACY_STATE_KEY, json.dumps(blob))

        requirement = asyncio.run(store.get("REQ-1"))
        assert requirement is not None
        assert requirement.sections.coder.pr is None
        assert requirement.sections.tester.test_cases[0].title == "t"
        assert requirement.sections.tester.test_results.status == ""
