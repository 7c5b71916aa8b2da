"""
Tests for GateWorkflowEngine -- the gate review lifecycle end to end.

Covers:
- open_assignment(): gate routing, initial position
- approve_gate(): recruiter gates, company stages, documents, hire
- deny_gate(), request_info(), provide_info(), add_note()
- Check order: not found, terminal, stale, authorization/conflict, validation
- Rejections leave version and history unchanged
- execute(): explicit outcomes
- Notifications and structured logs
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from review_kernel.domain.authorization import GateAction
from review_kernel.domain.commands import (
    AddNote,
    ApproveGate,
    DenyGate,
    ProvideInfo,
    RequestInfo,
)
from review_kernel.domain.dtos import ActorContext
from review_kernel.domain.gates import (
    ActorRole,
    AssignmentState,
    EventAction,
    Gate,
    Stage,
)
from review_kernel.exceptions import (
    AssignmentNotFoundError,
    AuthorizationError,
    ConflictError,
    DocumentNotStagedError,
    StaleStateError,
    TerminalStateError,
    ValidationError,
)
from review_kernel.services.placement_service import SqlPlacementPort
from review_kernel.services.gate_workflow import GateWorkflowEngine
from tests.conftest import FailingNotifier


def to_offer(workflow, assignment, hiring_manager):
    return workflow.approve_gate(
        assignment.id, hiring_manager, assignment.version, target_stage=Stage.OFFER,
    )


class TestOpenAssignment:
    def test_full_routing(self, assignment):
        assert assignment.current_gate is Gate.CANDIDATE_RECRUITER
        assert assignment.stage is Stage.SCREEN
        assert assignment.state is AssignmentState.AWAITING_REVIEW
        assert assignment.version == 1
        assert assignment.history == ()

    def test_no_recruiters_starts_at_company(self, workflow, hiring_manager):
        a = workflow.open_assignment(
            uuid4(), uuid4(), hiring_manager,
            has_candidate_recruiter=False, has_company_recruiter=False,
        )
        assert a.current_gate is Gate.COMPANY
        assert a.gate_sequence == (Gate.COMPANY,)

    def test_company_recruiter_only(self, workflow, company_recruiter):
        a = workflow.open_assignment(
            uuid4(), uuid4(), company_recruiter, has_candidate_recruiter=False,
        )
        assert a.current_gate is Gate.COMPANY_RECRUITER

    def test_persisted(self, workflow, assignment):
        loaded = workflow.get_assignment(assignment.id)
        assert loaded == assignment


class TestScenarios:
    """The reference walk-through of one assignment."""

    def test_recruiter_approval_advances_gate(self, workflow, assignment, candidate_recruiter):
        a = workflow.approve_gate(
            assignment.id, candidate_recruiter, 1, notes="looks strong",
        )
        assert a.current_gate is Gate.COMPANY_RECRUITER
        assert a.stage is Stage.SCREEN
        assert a.state is AssignmentState.AWAITING_REVIEW
        assert a.version == 2
        assert len(a.history) == 1
        event = a.history[0]
        assert event.action is EventAction.APPROVE
        assert event.actor_id == candidate_recruiter.actor_id
        assert event.actor_role is ActorRole.CANDIDATE_RECRUITER
        assert event.gate is Gate.CANDIDATE_RECRUITER
        assert event.payload.text == "looks strong"
        assert event.payload.target_gate is Gate.COMPANY_RECRUITER

    def test_duplicate_info_request_conflicts(self, workflow, at_company_gate, hiring_manager):
        a = workflow.request_info(
            at_company_gate.id, hiring_manager, at_company_gate.version,
            questions="confirm work authorization",
        )
        assert a.state is AssignmentState.INFO_REQUESTED
        assert a.current_gate is Gate.COMPANY

        with pytest.raises(ConflictError) as exc_info:
            workflow.request_info(a.id, hiring_manager, a.version, questions="and salary?")
        assert exc_info.value.retriable

        after = workflow.get_assignment(a.id)
        assert len(after.history) == len(a.history)
        assert after.version == a.version

    def test_candidate_side_recruiter_answers(
        self, workflow, at_company_gate, hiring_manager, candidate_recruiter,
    ):
        a = workflow.request_info(
            at_company_gate.id, hiring_manager, at_company_gate.version,
            questions="confirm work authorization",
        )
        request_sequence = a.history[-1].sequence

        a = workflow.provide_info(
            a.id, candidate_recruiter, a.version, answers="confirmed, H1B valid",
        )
        assert a.state is AssignmentState.AWAITING_REVIEW
        request = next(e for e in a.history if e.sequence == request_sequence)
        assert request.answered is True
        assert a.history[-1].action is EventAction.PROVIDE_INFO
        assert a.history[-1].payload.text == "confirmed, H1B valid"
        assert a.outstanding_request is None

    def test_interview_with_documents(
        self, workflow, session, staging, at_company_gate, hiring_manager, deterministic_clock,
    ):
        staging.stage(at_company_gate.id, "doc1", deterministic_clock.now())
        staging.stage(at_company_gate.id, "doc2", deterministic_clock.now())
        session.commit()

        a = workflow.approve_gate(
            at_company_gate.id, hiring_manager, at_company_gate.version,
            target_stage="interview", staged_document_refs=["doc1", "doc2"],
        )
        assert a.stage is Stage.INTERVIEW
        approvals = [e for e in a.history if e.action is EventAction.APPROVE]
        assert approvals[-1].payload.document_refs == ("doc1", "doc2")
        docs = staging.documents_for(a.id)
        assert all(d.is_committed for d in docs)
        assert {d.document_ref for d in docs} == {"doc1", "doc2"}

    def test_offer_then_hire(self, workflow, session, at_company_gate, hiring_manager):
        a = to_offer(workflow, at_company_gate, hiring_manager)
        assert a.stage is Stage.OFFER

        a = workflow.approve_gate(a.id, hiring_manager, a.version, salary=150000)
        assert a.state is AssignmentState.TERMINAL_HIRED
        assert a.stage is Stage.HIRED

        placement = SqlPlacementPort(session).get_for_assignment(a.id)
        assert placement is not None
        assert placement.salary == Decimal("150000")
        assert placement.candidate_id == a.candidate_id

        with pytest.raises(TerminalStateError):
            workflow.approve_gate(a.id, hiring_manager, a.version, salary=150000)
        with pytest.raises(TerminalStateError):
            workflow.deny_gate(a.id, hiring_manager, a.version, reason="changed mind")

    def test_empty_deny_reason(self, workflow, assignment, candidate_recruiter):
        with pytest.raises(ValidationError):
            workflow.deny_gate(assignment.id, candidate_recruiter, 1, reason="")
        after = workflow.get_assignment(assignment.id)
        assert after.version == 1
        assert after.state is AssignmentState.AWAITING_REVIEW
        assert after.history == ()


class TestApprove:
    def test_company_default_stage(self, workflow, at_company_gate, company_admin):
        a = workflow.approve_gate(at_company_gate.id, company_admin, at_company_gate.version)
        assert a.stage is Stage.COMPANY_REVIEW
        assert a.current_gate is Gate.COMPANY

    def test_wrong_gate_role(self, workflow, assignment, company_recruiter):
        with pytest.raises(AuthorizationError) as exc_info:
            workflow.approve_gate(assignment.id, company_recruiter, 1)
        assert exc_info.value.gate == "candidate_recruiter"
        assert exc_info.value.roles == ("company_recruiter",)
        assert not exc_info.value.retriable

    def test_blocked_while_info_requested(self, workflow, at_company_gate, hiring_manager):
        a = workflow.request_info(
            at_company_gate.id, hiring_manager, at_company_gate.version, questions="visa?",
        )
        with pytest.raises(ConflictError):
            workflow.approve_gate(a.id, hiring_manager, a.version, target_stage="offer")

    def test_hire_without_salary_changes_nothing(self, workflow, session, at_company_gate, hiring_manager):
        a = to_offer(workflow, at_company_gate, hiring_manager)
        for salary in (None, 0, -100):
            with pytest.raises(ValidationError):
                workflow.approve_gate(a.id, hiring_manager, a.version, salary=salary)
        after = workflow.get_assignment(a.id)
        assert after.version == a.version
        assert after.history == a.history
        assert SqlPlacementPort(session).get_for_assignment(a.id) is None

    def test_sub_cent_salary_changes_nothing(self, workflow, session, at_company_gate, hiring_manager):
        a = to_offer(workflow, at_company_gate, hiring_manager)
        for salary in (Decimal("0.0000000001"), Decimal("150000.0000000001")):
            with pytest.raises(ValidationError) as exc_info:
                workflow.approve_gate(a.id, hiring_manager, a.version, salary=salary)
            assert exc_info.value.field == "salary"
        after = workflow.get_assignment(a.id)
        assert after.version == a.version
        assert after.state is AssignmentState.AWAITING_REVIEW
        assert after.history == a.history
        assert SqlPlacementPort(session).get_for_assignment(a.id) is None

    def test_placement_stores_approved_salary(
        self, workflow, session_factory, at_company_gate, hiring_manager,
    ):
        a = to_offer(workflow, at_company_gate, hiring_manager)
        a = workflow.approve_gate(a.id, hiring_manager, a.version, salary=Decimal("123456.78"))

        fresh = session_factory()
        try:
            placement = SqlPlacementPort(fresh).get_for_assignment(a.id)
        finally:
            fresh.close()
        assert placement.salary == Decimal("123456.78")
        assert a.history[-1].payload.salary == placement.salary

    def test_non_string_notes_rejected(self, workflow, assignment, candidate_recruiter):
        with pytest.raises(ValidationError) as exc_info:
            workflow.approve_gate(assignment.id, candidate_recruiter, 1, notes=12345)
        assert exc_info.value.field == "notes"
        after = workflow.get_assignment(assignment.id)
        assert after.version == 1
        assert after.history == ()

    def test_notes_recorded_stripped(self, workflow, assignment, candidate_recruiter):
        a = workflow.approve_gate(assignment.id, candidate_recruiter, 1, notes="  strong fit ")
        assert a.history[-1].payload.text == "strong fit"

    def test_unstaged_document_rolls_back(
        self, workflow, session, staging, at_company_gate, hiring_manager, deterministic_clock,
    ):
        staging.stage(at_company_gate.id, "doc1", deterministic_clock.now())
        session.commit()

        with pytest.raises(DocumentNotStagedError) as exc_info:
            workflow.approve_gate(
                at_company_gate.id, hiring_manager, at_company_gate.version,
                target_stage="interview", staged_document_refs=["doc1", "missing"],
            )
        assert exc_info.value.document_ref == "missing"

        after = workflow.get_assignment(at_company_gate.id)
        assert after.stage is at_company_gate.stage
        assert after.version == at_company_gate.version
        assert not any(d.is_committed for d in staging.documents_for(after.id))

    def test_documents_only_at_interview(
        self, workflow, session, staging, at_company_gate, hiring_manager,
        company_admin, deterministic_clock,
    ):
        staging.stage(at_company_gate.id, "doc1", deterministic_clock.now())
        session.commit()
        with pytest.raises(ValidationError):
            workflow.approve_gate(
                at_company_gate.id, hiring_manager, at_company_gate.version,
                target_stage="company_feedback", staged_document_refs=["doc1"],
            )
        assert not staging.documents_for(at_company_gate.id)[0].is_committed

        a = workflow.approve_gate(
            at_company_gate.id, company_admin, at_company_gate.version,
            target_stage="interview", staged_document_refs=["doc1"],
        )
        assert a.stage is Stage.INTERVIEW
        assert staging.documents_for(a.id)[0].is_committed

    def test_platform_admin_override(self, workflow, assignment, platform_admin):
        a = workflow.approve_gate(assignment.id, platform_admin, 1)
        assert a.current_gate is Gate.COMPANY_RECRUITER
        assert a.history[-1].actor_role is ActorRole.PLATFORM_ADMIN

    def test_acting_role_narrows_permissions(self, workflow, assignment):
        actor = ActorContext(
            actor_id=uuid4(),
            roles=frozenset({ActorRole.CANDIDATE_RECRUITER, ActorRole.COMPANY_RECRUITER}),
            acting_role=ActorRole.COMPANY_RECRUITER,
        )
        with pytest.raises(AuthorizationError):
            workflow.approve_gate(assignment.id, actor, 1)


class TestDeny:
    def test_deny_freezes(self, workflow, assignment, candidate_recruiter):
        a = workflow.deny_gate(assignment.id, candidate_recruiter, 1, reason="not a fit")
        assert a.state is AssignmentState.TERMINAL_REJECTED
        assert a.stage is Stage.REJECTED
        assert a.history[-1].action is EventAction.DENY
        assert a.history[-1].payload.text == "not a fit"

        with pytest.raises(TerminalStateError):
            workflow.add_note(a.id, candidate_recruiter, a.version, note="for the record")

    def test_deny_while_info_requested(self, workflow, at_company_gate, hiring_manager):
        a = workflow.request_info(
            at_company_gate.id, hiring_manager, at_company_gate.version, questions="visa?",
        )
        a = workflow.deny_gate(a.id, hiring_manager, a.version, reason="no response")
        assert a.state is AssignmentState.TERMINAL_REJECTED

    def test_non_reviewer_cannot_deny(self, workflow, at_company_gate, candidate_recruiter):
        with pytest.raises(AuthorizationError):
            workflow.deny_gate(
                at_company_gate.id, candidate_recruiter, at_company_gate.version,
                reason="withdrawn",
            )


class TestInfoRequests:
    def test_questions_required(self, workflow, assignment, candidate_recruiter):
        with pytest.raises(ValidationError):
            workflow.request_info(assignment.id, candidate_recruiter, 1, questions="  ")

    def test_provide_without_request_conflicts(self, workflow, assignment, candidate):
        with pytest.raises(ConflictError):
            workflow.provide_info(assignment.id, candidate, 1, answers="here you go")

    def test_only_asked_side_answers(
        self, workflow, assignment, candidate_recruiter, candidate, company_recruiter,
    ):
        a = workflow.request_info(
            assignment.id, candidate_recruiter, 1, questions="current salary?",
        )
        with pytest.raises(AuthorizationError):
            workflow.provide_info(a.id, company_recruiter, a.version, answers="n/a")
        with pytest.raises(AuthorizationError):
            workflow.provide_info(a.id, candidate_recruiter, a.version, answers="n/a")

        a = workflow.provide_info(a.id, candidate, a.version, answers="95k")
        assert a.state is AssignmentState.AWAITING_REVIEW

    def test_answers_required(self, workflow, at_company_gate, hiring_manager, candidate_recruiter):
        a = workflow.request_info(
            at_company_gate.id, hiring_manager, at_company_gate.version, questions="visa?",
        )
        with pytest.raises(ValidationError):
            workflow.provide_info(a.id, candidate_recruiter, a.version, answers="")

    def test_candidate_answers_without_candidate_recruiter(self, workflow, hiring_manager, candidate):
        a = workflow.open_assignment(
            uuid4(), uuid4(), hiring_manager,
            has_candidate_recruiter=False, has_company_recruiter=False,
        )
        a = workflow.request_info(a.id, hiring_manager, a.version, questions="start date?")
        a = workflow.provide_info(a.id, candidate, a.version, answers="June")
        assert a.state is AssignmentState.AWAITING_REVIEW

    def test_new_request_after_answer(self, workflow, at_company_gate, hiring_manager, candidate_recruiter):
        a = workflow.request_info(
            at_company_gate.id, hiring_manager, at_company_gate.version, questions="visa?",
        )
        a = workflow.provide_info(a.id, candidate_recruiter, a.version, answers="H1B")
        a = workflow.request_info(a.id, hiring_manager, a.version, questions="start date?")
        open_requests = [e for e in a.history if e.is_open_request]
        assert len(open_requests) == 1


class TestAddNote:
    def test_note_bumps_version_only(self, workflow, assignment, candidate_recruiter):
        a = workflow.add_note(assignment.id, candidate_recruiter, 1, note="called candidate")
        assert a.version == 2
        assert a.current_gate is assignment.current_gate
        assert a.stage is assignment.stage
        assert a.state is assignment.state
        assert a.history[-1].action is EventAction.NOTE

    def test_note_required(self, workflow, assignment, candidate_recruiter):
        with pytest.raises(ValidationError):
            workflow.add_note(assignment.id, candidate_recruiter, 1, note="")

    def test_responder_may_note(self, workflow, at_company_gate, hiring_manager, candidate_recruiter):
        a = workflow.request_info(
            at_company_gate.id, hiring_manager, at_company_gate.version, questions="visa?",
        )
        a = workflow.add_note(a.id, candidate_recruiter, a.version, note="checking with candidate")
        assert a.state is AssignmentState.INFO_REQUESTED

    def test_outsider_cannot_note(self, workflow, assignment, candidate):
        with pytest.raises(AuthorizationError):
            workflow.add_note(assignment.id, candidate, 1, note="hello")


class TestCheckOrder:
    def test_not_found_first(self, workflow, candidate):
        with pytest.raises(AssignmentNotFoundError) as exc_info:
            workflow.deny_gate(uuid4(), candidate, 99, reason="")
        assert exc_info.value.code == "NOT_FOUND"

    def test_terminal_before_stale(self, workflow, assignment, candidate_recruiter):
        workflow.deny_gate(assignment.id, candidate_recruiter, 1, reason="no")
        with pytest.raises(TerminalStateError):
            workflow.approve_gate(assignment.id, candidate_recruiter, 1)

    def test_stale_before_authorization(self, workflow, assignment, candidate):
        with pytest.raises(StaleStateError) as exc_info:
            workflow.approve_gate(assignment.id, candidate, 7)
        assert exc_info.value.expected_version == 7
        assert exc_info.value.actual_version == 1

    def test_authorization_before_validation(self, workflow, assignment, candidate):
        with pytest.raises(AuthorizationError):
            workflow.deny_gate(assignment.id, candidate, 1, reason="")


class TestQueries:
    def test_history_in_order(self, workflow, at_company_gate):
        history = workflow.get_history(at_company_gate.id)
        assert [e.sequence for e in history] == [1, 2]

    def test_permitted_actions(self, workflow, at_company_gate, hiring_manager, candidate):
        assert workflow.permitted_actions(at_company_gate.id, hiring_manager) == {
            GateAction.APPROVE, GateAction.DENY, GateAction.REQUEST_INFO, GateAction.ADD_NOTE,
        }
        assert workflow.permitted_actions(at_company_gate.id, candidate) == frozenset()

    def test_unknown_history(self, workflow):
        with pytest.raises(AssignmentNotFoundError):
            workflow.get_history(uuid4())


class TestExecute:
    def test_success(self, workflow, assignment, candidate_recruiter):
        outcome = workflow.execute(ApproveGate(assignment.id, candidate_recruiter, 1))
        assert outcome.success
        assert outcome.action is GateAction.APPROVE
        assert outcome.assignment.current_gate is Gate.COMPANY_RECRUITER

    def test_tagged_failure(self, workflow, assignment, candidate_recruiter):
        outcome = workflow.execute(DenyGate(assignment.id, candidate_recruiter, 5, reason="x"))
        assert not outcome.success
        assert outcome.error_code == "STALE_STATE"
        assert outcome.retriable
        assert outcome.assignment is None
        assert "expected version 5" in outcome.reason

    def test_all_commands(self, workflow, at_company_gate, hiring_manager, candidate_recruiter):
        a = at_company_gate
        for command in (
            AddNote(a.id, hiring_manager, a.version, note="strong"),
            RequestInfo(a.id, hiring_manager, a.version + 1, questions="visa?"),
            ProvideInfo(a.id, candidate_recruiter, a.version + 2, answers="H1B"),
            ApproveGate(a.id, hiring_manager, a.version + 3, target_stage=Stage.OFFER),
            DenyGate(a.id, hiring_manager, a.version + 4, reason="budget cut"),
        ):
            outcome = workflow.execute(command)
            assert outcome.success, outcome.reason
            assert outcome.action is command.action
        assert outcome.assignment.state is AssignmentState.TERMINAL_REJECTED

    def test_validation_failure_code(self, workflow, assignment, candidate_recruiter):
        outcome = workflow.execute(AddNote(assignment.id, candidate_recruiter, 1, note=""))
        assert outcome.error_code == "VALIDATION_FAILED"
        assert not outcome.retriable


class TestNotifications:
    def test_approval_notifications(self, workflow, notifier, assignment, candidate_recruiter):
        workflow.approve_gate(assignment.id, candidate_recruiter, 1, target_stage="submitted")
        assert notifier.names == [
            "assignment.gate_approved",
            "assignment.gate_entered",
            "assignment.stage_changed",
        ]
        _, entered = notifier.published[1]
        assert entered["gate"] == "company_recruiter"
        assert entered["previous_gate"] == "candidate_recruiter"

    def test_hire_notification(self, workflow, notifier, at_company_gate, hiring_manager):
        a = to_offer(workflow, at_company_gate, hiring_manager)
        notifier.published.clear()
        workflow.approve_gate(a.id, hiring_manager, a.version, salary=Decimal("120000"))
        assert notifier.names[-1] == "assignment.hired"
        assert Decimal(notifier.published[-1][1]["salary"]) == Decimal("120000")

    def test_info_request_names_responders(self, workflow, notifier, at_company_gate, hiring_manager):
        workflow.request_info(
            at_company_gate.id, hiring_manager, at_company_gate.version, questions="visa?",
        )
        name, payload = notifier.published[-1]
        assert name == "assignment.info_requested"
        assert payload["responders"] == ["candidate_recruiter"]

    def test_nothing_published_on_rejection(self, workflow, notifier, assignment, candidate):
        notifier.published.clear()
        with pytest.raises(AuthorizationError):
            workflow.approve_gate(assignment.id, candidate, 1)
        assert notifier.published == []

    def test_failing_notifier_does_not_undo_commit(
        self, session, deterministic_clock, candidate_recruiter, captured_logs,
    ):
        workflow = GateWorkflowEngine(session, deterministic_clock, FailingNotifier())
        a = workflow.open_assignment(uuid4(), uuid4(), candidate_recruiter)
        a = workflow.deny_gate(a.id, candidate_recruiter, 1, reason="duplicate submission")
        assert a.state is AssignmentState.TERMINAL_REJECTED
        assert workflow.get_assignment(a.id).version == 2
        failures = [r for r in captured_logs() if r["message"] == "notification_publish_failed"]
        assert failures and failures[0]["exc_type"] == "ConnectionError"

    def test_deferred_publication_without_auto_commit(
        self, session, deterministic_clock, notifier, candidate_recruiter,
    ):
        workflow = GateWorkflowEngine(
            session, deterministic_clock, notifier, auto_commit=False,
        )
        a = workflow.open_assignment(uuid4(), uuid4(), candidate_recruiter)
        workflow.add_note(a.id, candidate_recruiter, 1, note="draft")
        assert notifier.published == []
        session.commit()
        assert workflow.publish_pending() == 1
        assert notifier.names == ["assignment.note_added"]


class TestLogging:
    def test_transition_logged_with_context(self, workflow, assignment, candidate_recruiter, captured_logs):
        workflow.approve_gate(assignment.id, candidate_recruiter, 1)
        records = captured_logs()
        committed = [r for r in records if r["message"] == "gate_transition_committed"]
        assert len(committed) == 1
        record = committed[0]
        assert record["assignment_id"] == str(assignment.id)
        assert record["actor_id"] == str(candidate_recruiter.actor_id)
        assert record["operation"] == "approve"
        assert record["to_gate"] == "company_recruiter"
        assert record["version"] == 2

    def test_rejection_logged_with_code(self, workflow, assignment, candidate, captured_logs):
        with pytest.raises(AuthorizationError):
            workflow.approve_gate(assignment.id, candidate, 1)
        rejected = [r for r in captured_logs() if r["message"] == "gate_transition_rejected"]
        assert rejected[0]["error_code"] == "NOT_AUTHORIZED"
        assert rejected[0]["level"] == "WARNING"
