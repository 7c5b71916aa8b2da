"""
AssignmentSelector -- read-side queries over assignments.

Work queues for reviewers ("what is waiting at my gate"), outstanding info
requests for responders, and placements.  Nothing here is consulted by the
engine when deciding a transition.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from review_kernel.domain.authorization import GATE_RULES, OVERRIDE_ROLES
from review_kernel.domain.dtos import Assignment, Placement
from review_kernel.domain.gates import (
    TERMINAL_STATES,
    ActorRole,
    AssignmentState,
    Gate,
)
from review_kernel.models.assignment import AssignmentModel
from review_kernel.models.gate_event import GateEventModel
from review_kernel.models.placement import PlacementModel
from review_kernel.selectors.base import BaseSelector


class AssignmentSelector(BaseSelector):
    def _history(self, assignment_id: UUID):
        rows = self.session.execute(
            select(GateEventModel)
            .where(GateEventModel.assignment_id == assignment_id)
            .order_by(GateEventModel.sequence)
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    def _to_dtos(self, models) -> list[Assignment]:
        return [m.to_dto(history=self._history(m.id)) for m in models]

    def at_gate(
        self,
        gate: Gate,
        state: AssignmentState | None = None,
    ) -> list[Assignment]:
        """Open assignments currently at ``gate``, oldest first."""
        query = select(AssignmentModel).where(
            AssignmentModel.current_gate == gate.value,
            AssignmentModel.state.not_in([s.value for s in TERMINAL_STATES]),
        )
        if state is not None:
            query = query.where(AssignmentModel.state == state.value)
        query = query.order_by(AssignmentModel.created_at, AssignmentModel.id)
        return self._to_dtos(self.session.execute(query).scalars())

    def review_queue(self, roles: frozenset[ActorRole]) -> list[Assignment]:
        """Assignments awaiting review at any gate ``roles`` may review."""
        if roles & OVERRIDE_ROLES:
            gates = list(GATE_RULES)
        else:
            gates = [g for g, rule in GATE_RULES.items() if roles & rule.reviewer_roles]
        queue: list[Assignment] = []
        for gate in gates:
            queue.extend(self.at_gate(gate, AssignmentState.AWAITING_REVIEW))
        return queue

    def for_job(self, job_id: UUID) -> list[Assignment]:
        query = (
            select(AssignmentModel)
            .where(AssignmentModel.job_id == job_id)
            .order_by(AssignmentModel.created_at, AssignmentModel.id)
        )
        return self._to_dtos(self.session.execute(query).scalars())

    def for_candidate(self, candidate_id: UUID) -> list[Assignment]:
        query = (
            select(AssignmentModel)
            .where(AssignmentModel.candidate_id == candidate_id)
            .order_by(AssignmentModel.created_at, AssignmentModel.id)
        )
        return self._to_dtos(self.session.execute(query).scalars())

    def count_by_state(self) -> dict[AssignmentState, int]:
        rows = self.session.execute(
            select(AssignmentModel.state, func.count()).group_by(AssignmentModel.state)
        ).all()
        counts = {state: 0 for state in AssignmentState}
        for state, count in rows:
            counts[AssignmentState(state)] = count
        return counts

    def placements_for_job(self, job_id: UUID) -> list[Placement]:
        rows = self.session.execute(
            select(PlacementModel)
            .where(PlacementModel.job_id == job_id)
            .order_by(PlacementModel.hired_at)
        ).scalars()
        return [row.to_dto() for row in rows]
