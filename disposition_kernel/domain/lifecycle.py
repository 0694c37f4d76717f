"""
Report lifecycle state machine (``disposition_kernel.domain.lifecycle``).

Responsibility
--------------
Defines the enumerated report states, decision kinds and decision stages,
and the ONE legal-transition table consulted by the decision engine.  Any
(state, decision) pair not in ``TRANSITION_TABLE`` is illegal.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``models/``, ``services/`` or ``selectors/``.

Invariants enforced
-------------------
* Explicit table -- ``find_transition`` is the only way a decision maps to
  a destination; there is no inference from status strings.
* Terminal states have no outgoing edges (``TERMINAL_STATES``).
* Multi-step outcomes (``ESCALATION_APPROVED -> UNDER_ANALYSIS``) are
  recorded as a ``path``; the last element is the stored state.
* Non-decision lifecycle moves (intake release, opening a report for
  validation, compliance pickup) are listed in ``LIFECYCLE_EDGES``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class ReportType(str, Enum):
    """Regulatory report type."""

    CTR = "CTR"
    STR = "STR"


class ReportState(str, Enum):
    """Report lifecycle states."""

    SUBMITTED = "SUBMITTED"
    PENDING_VALIDATION = "PENDING_VALIDATION"
    IN_VALIDATION = "IN_VALIDATION"
    VALIDATED = "VALIDATED"
    RETURNED = "RETURNED"
    REJECTED = "REJECTED"
    UNDER_COMPLIANCE_REVIEW = "UNDER_COMPLIANCE_REVIEW"
    ARCHIVED = "ARCHIVED"
    MONITORED = "MONITORED"
    ESCALATION_PENDING = "ESCALATION_PENDING"
    ESCALATION_APPROVED = "ESCALATION_APPROVED"
    ESCALATION_REJECTED = "ESCALATION_REJECTED"
    UNDER_ANALYSIS = "UNDER_ANALYSIS"


class DecisionKind(str, Enum):
    """Decision kinds across all three stages."""

    ACCEPT = "ACCEPT"
    RETURN = "RETURN"
    REJECT = "REJECT"
    ARCHIVE = "ARCHIVE"
    MONITOR = "MONITOR"
    ESCALATE = "ESCALATE"
    APPROVE = "APPROVE"


class DecisionStage(str, Enum):
    """Which review stage a decision belongs to."""

    VALIDATION = "validation"
    REVIEW = "review"
    ESCALATION = "escalation"


# States the engine never leaves.  MONITORED leaves active queues but stays
# queryable through the dispositions view.
TERMINAL_STATES: frozenset[ReportState] = frozenset({
    ReportState.RETURNED,
    ReportState.REJECTED,
    ReportState.ARCHIVED,
    ReportState.MONITORED,
    ReportState.UNDER_ANALYSIS,
})

ASSIGNABLE_STATES: frozenset[ReportState] = frozenset({
    ReportState.PENDING_VALIDATION,
    ReportState.VALIDATED,
    ReportState.ESCALATION_PENDING,
})

# States in which a decision may be submitted, and the stage it belongs to.
DECIDABLE_STATES: dict[ReportState, DecisionStage] = {
    ReportState.IN_VALIDATION: DecisionStage.VALIDATION,
    ReportState.UNDER_COMPLIANCE_REVIEW: DecisionStage.REVIEW,
    ReportState.ESCALATION_PENDING: DecisionStage.ESCALATION,
}

# Moves that happen without a Decision record.
LIFECYCLE_EDGES: frozenset[tuple[ReportState, ReportState]] = frozenset({
    (ReportState.SUBMITTED, ReportState.PENDING_VALIDATION),
    (ReportState.PENDING_VALIDATION, ReportState.IN_VALIDATION),
    (ReportState.VALIDATED, ReportState.UNDER_COMPLIANCE_REVIEW),
})


@dataclass(frozen=True)
class TransitionRule:
    """One legal edge of the decision state machine."""

    from_state: ReportState
    kind: DecisionKind
    stage: DecisionStage
    path: tuple[ReportState, ...]
    report_type: ReportType | None = None
    keeps_assignment: bool = False

    @property
    def to_state(self) -> ReportState:
        return self.path[-1]

    def applies_to(self, report_type: ReportType) -> bool:
        return self.report_type is None or self.report_type == report_type


TRANSITION_TABLE: tuple[TransitionRule, ...] = (
    # Validation stage
    TransitionRule(
        ReportState.IN_VALIDATION,
        DecisionKind.ACCEPT,
        DecisionStage.VALIDATION,
        (ReportState.VALIDATED, ReportState.UNDER_COMPLIANCE_REVIEW),
        report_type=ReportType.CTR,
        keeps_assignment=True,
    ),
    TransitionRule(
        ReportState.IN_VALIDATION,
        DecisionKind.ACCEPT,
        DecisionStage.VALIDATION,
        (ReportState.UNDER_ANALYSIS,),
        report_type=ReportType.STR,
    ),
    TransitionRule(
        ReportState.IN_VALIDATION,
        DecisionKind.RETURN,
        DecisionStage.VALIDATION,
        (ReportState.RETURNED,),
    ),
    TransitionRule(
        ReportState.IN_VALIDATION,
        DecisionKind.REJECT,
        DecisionStage.VALIDATION,
        (ReportState.REJECTED,),
    ),
    # Compliance review stage
    TransitionRule(
        ReportState.UNDER_COMPLIANCE_REVIEW,
        DecisionKind.ARCHIVE,
        DecisionStage.REVIEW,
        (ReportState.ARCHIVED,),
    ),
    TransitionRule(
        ReportState.UNDER_COMPLIANCE_REVIEW,
        DecisionKind.MONITOR,
        DecisionStage.REVIEW,
        (ReportState.MONITORED,),
    ),
    TransitionRule(
        ReportState.UNDER_COMPLIANCE_REVIEW,
        DecisionKind.ESCALATE,
        DecisionStage.REVIEW,
        (ReportState.ESCALATION_PENDING,),
    ),
    # Escalation approval stage
    TransitionRule(
        ReportState.ESCALATION_PENDING,
        DecisionKind.APPROVE,
        DecisionStage.ESCALATION,
        (ReportState.ESCALATION_APPROVED, ReportState.UNDER_ANALYSIS),
    ),
    TransitionRule(
        ReportState.ESCALATION_PENDING,
        DecisionKind.REJECT,
        DecisionStage.ESCALATION,
        (ReportState.ESCALATION_REJECTED, ReportState.ARCHIVED),
    ),
)


def find_transition(
    state: ReportState,
    kind: DecisionKind,
    report_type: ReportType,
    *,
    retain_validator_for_review: bool = True,
) -> TransitionRule | None:
    """
    Look up the legal transition for ``kind`` from ``state``.

    Returns None when the pair is not in the table.  With
    ``retain_validator_for_review`` off, a CTR ACCEPT stops at VALIDATED and
    releases the validator so compliance can pick it up separately.
    """
    for rule in TRANSITION_TABLE:
        if rule.from_state == state and rule.kind == kind and rule.applies_to(report_type):
            if (
                not retain_validator_for_review
                and rule.kind == DecisionKind.ACCEPT
                and rule.report_type == ReportType.CTR
            ):
                return replace(rule, path=(ReportState.VALIDATED,), keeps_assignment=False)
            return rule
    return None


def legal_decisions(state: ReportState, report_type: ReportType) -> frozenset[DecisionKind]:
    """Decision kinds the table accepts from ``state`` for ``report_type``."""
    return frozenset(
        rule.kind
        for rule in TRANSITION_TABLE
        if rule.from_state == state and rule.applies_to(report_type)
    )


def is_terminal(state: ReportState) -> bool:
    return state in TERMINAL_STATES


def is_lifecycle_edge(from_state: ReportState, to_state: ReportState) -> bool:
    return (from_state, to_state) in LIFECYCLE_EDGES
