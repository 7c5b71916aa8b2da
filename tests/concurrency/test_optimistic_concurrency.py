"""
Optimistic concurrency: two writers acting on the same version.

Exactly one of them wins.  The loser gets a retriable StaleStateError and
nothing it attempted is written, whether the mismatch is caught when the
engine loads the assignment or by the conditional UPDATE at flush time.
"""

from dataclasses import replace

import pytest

from review_kernel.domain.commands import AddNote
from review_kernel.domain.gates import Gate
from review_kernel.exceptions import StaleStateError
from review_kernel.services.assignment_store import SqlAssignmentStore
from review_kernel.services.gate_workflow import GateWorkflowEngine


@pytest.fixture
def two_engines(session_factory, deterministic_clock, notifier):
    session_a = session_factory()
    session_b = session_factory()
    yield (
        GateWorkflowEngine(session_a, deterministic_clock, notifier),
        GateWorkflowEngine(session_b, deterministic_clock, notifier),
    )
    session_a.close()
    session_b.close()


class TestTwoWriters:
    def test_second_writer_is_stale(self, two_engines, assignment, candidate_recruiter):
        engine_a, engine_b = two_engines
        seen_a = engine_a.get_assignment(assignment.id)
        seen_b = engine_b.get_assignment(assignment.id)
        assert seen_a.version == seen_b.version == 1

        engine_a.approve_gate(assignment.id, candidate_recruiter, seen_a.version)
        with pytest.raises(StaleStateError) as exc_info:
            engine_b.deny_gate(
                assignment.id, candidate_recruiter, seen_b.version, reason="duplicate",
            )
        assert exc_info.value.retriable
        assert exc_info.value.actual_version == 2

        final = engine_b.get_assignment(assignment.id)
        assert final.version == 2
        assert final.current_gate is Gate.COMPANY_RECRUITER
        assert len(final.history) == 1

    def test_loser_retries_after_reload(self, two_engines, assignment, candidate_recruiter):
        engine_a, engine_b = two_engines
        engine_a.add_note(assignment.id, candidate_recruiter, 1, note="from A")

        outcome = engine_b.execute(AddNote(assignment.id, candidate_recruiter, 1, note="from B"))
        assert not outcome.success
        assert outcome.retriable

        fresh = engine_b.get_assignment(assignment.id)
        retried = engine_b.add_note(assignment.id, candidate_recruiter, fresh.version, note="from B")
        assert retried.version == 3
        assert [e.payload.text for e in retried.history] == ["from A", "from B"]


class TestConditionalUpdate:
    def test_flush_detects_concurrent_commit(
        self, session_factory, workflow, assignment, candidate_recruiter, monkeypatch,
    ):
        session_a = session_factory()
        try:
            store_a = SqlAssignmentStore(session_a)
            stale_model = store_a._get_model(assignment.id)
            stale = store_a.load(assignment.id)

            # Another writer commits version 2 after A has read version 1.
            workflow.add_note(assignment.id, candidate_recruiter, 1, note="concurrent")

            monkeypatch.setattr(store_a, "_get_model", lambda _id: stale_model)
            with pytest.raises(StaleStateError) as exc_info:
                store_a.compare_and_save(replace(stale, stage=stale.stage), 1)
            assert exc_info.value.actual_version is None
            session_a.rollback()
        finally:
            session_a.close()

        assert workflow.get_assignment(assignment.id).version == 2

    def test_version_check_before_write(self, session, assignment):
        store = SqlAssignmentStore(session)
        current = store.load(assignment.id)
        with pytest.raises(StaleStateError):
            store.compare_and_save(current, expected_version=4)
        assert store.load(assignment.id).version == 1
