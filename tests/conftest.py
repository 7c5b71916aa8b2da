"""
Pytest fixtures for the gate review kernel test suite.

Provides:
- A file-backed SQLite database per test (tables created, immutability
  listeners registered)
- A deterministic clock and a recording notification port
- Actors for every role and helpers that walk an assignment through gates
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from typing import Any
from uuid import uuid4

import pytest

from review_kernel.db.engine import (
    create_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from review_kernel.domain.clock import DeterministicClock
from review_kernel.domain.dtos import ActorContext
from review_kernel.domain.gates import ActorRole
from review_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from review_kernel.services.document_staging import SqlDocumentStaging
from review_kernel.services.gate_workflow import GateWorkflowEngine


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture review_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            ...
            logs = captured_logs()
            assert any(r["message"] == "gate_transition_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("review_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """A fresh SQLite database with all review tables."""
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'review.db'}")
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session(db_engine):
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


# =============================================================================
# Collaborators
# =============================================================================


class RecordingNotifier:
    """NotificationPort that keeps every published notification."""

    def __init__(self):
        self.published: list[tuple[str, dict[str, Any]]] = []

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        self.published.append((event_name, payload))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.published]


class FailingNotifier:
    """NotificationPort whose delivery always fails."""

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        raise ConnectionError("notification gateway unavailable")


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def workflow(session, deterministic_clock, notifier):
    """GateWorkflowEngine wired to the test session."""
    return GateWorkflowEngine(session, deterministic_clock, notifier)


@pytest.fixture
def staging(session):
    return SqlDocumentStaging(session)


# =============================================================================
# Actors
# =============================================================================


def make_actor(*roles: ActorRole) -> ActorContext:
    return ActorContext.of(uuid4(), *roles)


@pytest.fixture
def candidate():
    return make_actor(ActorRole.CANDIDATE)


@pytest.fixture
def candidate_recruiter():
    return make_actor(ActorRole.CANDIDATE_RECRUITER)


@pytest.fixture
def company_recruiter():
    return make_actor(ActorRole.COMPANY_RECRUITER)


@pytest.fixture
def hiring_manager():
    return make_actor(ActorRole.HIRING_MANAGER)


@pytest.fixture
def company_admin():
    return make_actor(ActorRole.COMPANY_ADMIN)


@pytest.fixture
def platform_admin():
    return make_actor(ActorRole.PLATFORM_ADMIN)


# =============================================================================
# Assignments
# =============================================================================


@pytest.fixture
def assignment(workflow, candidate_recruiter):
    """A new assignment routed through all three gates."""
    return workflow.open_assignment(uuid4(), uuid4(), candidate_recruiter)


@pytest.fixture
def at_company_gate(workflow, assignment, candidate_recruiter, company_recruiter):
    """An assignment approved through both recruiter gates."""
    a = workflow.approve_gate(
        assignment.id, candidate_recruiter, assignment.version,
        target_stage="submitted",
    )
    return workflow.approve_gate(
        a.id, company_recruiter, a.version, target_stage="recruiter_proposed",
    )
