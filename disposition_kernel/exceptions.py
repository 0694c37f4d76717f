"""
Typed Exception Hierarchy for the Disposition Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every business-rule failure in the workflow is reported synchronously to the
caller with enough structured detail to redisplay the offending field
(e.g. which reason was missing, which state the report was really in).
Callers catch by type and read attributes; they never parse messages.

  1. Every error has a TYPED exception class.
  2. Every exception has a CODE attribute (machine-readable, API-safe).
  3. Exceptions carry structured DATA set in ``__init__``.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    DispositionKernelError (base)
    |
    +-- DecisionError
    |   +-- MissingReasonError
    |   +-- IllegalTransitionError
    |   +-- InvalidDecisionPayloadError
    |
    +-- ConcurrencyError
    |   +-- StaleStateError
    |
    +-- AssignmentError
    |   +-- AlreadyAssignedError
    |   +-- ReportNotAssignableError
    |   +-- IneligibleAssigneeError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedActorError
    |   +-- SelfApprovalError
    |
    +-- ReportError
    |   +-- ReportNotFoundError
    |   +-- DuplicateReportError
    |
    +-- QueueError
    |   +-- InvalidQueueFilterError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- PersistenceError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Decision        | MISSING_REASON              | RETURN/REJECT/ESCALATE without reason
                | ILLEGAL_TRANSITION          | Kind not legal from current state
                | INVALID_DECISION_PAYLOAD    | Unknown decision name, bad field type
----------------|-----------------------------|-----------------------------------------
Concurrency     | STALE_STATE                 | Someone else decided/assigned first
----------------|-----------------------------|-----------------------------------------
Assignment      | ALREADY_ASSIGNED            | Non-supervisor claiming assigned report
                | REPORT_NOT_ASSIGNABLE       | State is terminal or not assignable
                | INELIGIBLE_ASSIGNEE         | Assignee role cannot own this report
----------------|-----------------------------|-----------------------------------------
Authorization   | UNAUTHORIZED_ACTOR          | Role/assignee check failed
                | SELF_APPROVAL               | Escalation approver == escalator
----------------|-----------------------------|-----------------------------------------
Report          | REPORT_NOT_FOUND            | Unknown reference number
                | DUPLICATE_REPORT            | Reference number already taken
----------------|-----------------------------|-----------------------------------------
Queue           | INVALID_QUEUE_FILTER        | Contradictory or malformed filters
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying decision/audit rows
----------------|-----------------------------|-----------------------------------------
Persistence     | PERSISTENCE_ERROR           | Store unavailable (retryable)

===============================================================================
HANDLING PATTERNS
===============================================================================

1. REDISPLAY THE FIELD:

    except MissingReasonError as e:
        return {"error": e.code, "field": e.field}

2. ONLY PersistenceError IS RETRYABLE:

    Business-rule errors repeat identically on retry.  ``retryable`` is a
    class attribute so callers can test it without importing subclasses.
"""


class DispositionKernelError(Exception):
    """Base exception for all disposition kernel errors."""

    code: str = "DISPOSITION_KERNEL_ERROR"
    retryable: bool = False

    def __init__(self, message: str = ""):
        super().__init__(message)


# Decision-related exceptions


class DecisionError(DispositionKernelError):
    """Base exception for decision-related errors."""

    code: str = "DECISION_ERROR"


class MissingReasonError(DecisionError):
    """A negative or escalating decision was submitted without its reason."""

    code: str = "MISSING_REASON"

    def __init__(self, field: str, decision: str):
        self.field = field
        self.decision = decision
        super().__init__(f"Decision {decision} requires a non-empty {field}")


class IllegalTransitionError(DecisionError):
    """Decision kind is not legal from the report's current state."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, reference: str, state: str, decision: str):
        self.reference = reference
        self.state = state
        self.decision = decision
        super().__init__(
            f"Decision {decision} is not legal for report {reference} in state {state}"
        )


class InvalidDecisionPayloadError(DecisionError):
    """Decision payload is malformed (unknown decision, wrong field types)."""

    code: str = "INVALID_DECISION_PAYLOAD"

    def __init__(self, detail: str, field: str | None = None):
        self.detail = detail
        self.field = field
        super().__init__(f"Invalid decision payload: {detail}")


# Concurrency-related exceptions


class ConcurrencyError(DispositionKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StaleStateError(ConcurrencyError):
    """
    Optimistic check failed: the report changed since the caller read it.

    Raised both when the caller's expected state/version no longer match
    and when the compare-and-swap update matched zero rows.
    """

    code: str = "STALE_STATE"

    def __init__(
        self,
        reference: str,
        expected_state: str | None,
        actual_state: str | None,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.reference = reference
        self.expected_state = expected_state
        self.actual_state = actual_state
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Report {reference} changed concurrently: expected state "
            f"{expected_state} (version {expected_version}), found "
            f"{actual_state} (version {actual_version})"
        )


# Assignment-related exceptions


class AssignmentError(DispositionKernelError):
    """Base exception for assignment-related errors."""

    code: str = "ASSIGNMENT_ERROR"


class AlreadyAssignedError(AssignmentError):
    """Report already has an active assignee and the caller may not reassign."""

    code: str = "ALREADY_ASSIGNED"

    def __init__(self, reference: str, assignee_id: str):
        self.reference = reference
        self.assignee_id = assignee_id
        super().__init__(f"Report {reference} is already assigned to {assignee_id}")


class ReportNotAssignableError(AssignmentError):
    """Report state does not accept assignments."""

    code: str = "REPORT_NOT_ASSIGNABLE"

    def __init__(self, reference: str, state: str):
        self.reference = reference
        self.state = state
        super().__init__(f"Report {reference} cannot be assigned in state {state}")


class IneligibleAssigneeError(AssignmentError):
    """Assignee's role cannot own this report at its current stage."""

    code: str = "INELIGIBLE_ASSIGNEE"

    def __init__(self, reference: str, assignee_id: str, role: str):
        self.reference = reference
        self.assignee_id = assignee_id
        self.role = role
        super().__init__(
            f"Staff member {assignee_id} with role {role} cannot be assigned report {reference}"
        )


# Authorization-related exceptions


class AuthorizationError(DispositionKernelError):
    """Base exception for authorization errors."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedActorError(AuthorizationError):
    """Actor's role or assignment does not permit the operation."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: str, role: str, action: str, reference: str | None = None):
        self.actor_id = actor_id
        self.role = role
        self.action = action
        self.reference = reference
        target = f" on report {reference}" if reference else ""
        super().__init__(f"Actor {actor_id} ({role}) may not {action}{target}")


class SelfApprovalError(AuthorizationError):
    """Escalation approver is the same actor who issued the ESCALATE decision."""

    code: str = "SELF_APPROVAL"

    def __init__(self, reference: str, actor_id: str):
        self.reference = reference
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} escalated report {reference} and cannot also decide the escalation"
        )


# Report-related exceptions


class ReportError(DispositionKernelError):
    """Base exception for report-related errors."""

    code: str = "REPORT_ERROR"


class ReportNotFoundError(ReportError):
    """No report with this reference number."""

    code: str = "REPORT_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Report not found: {reference}")


class DuplicateReportError(ReportError):
    """A report with this reference number already exists."""

    code: str = "DUPLICATE_REPORT"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Report already exists: {reference}")


# Queue-related exceptions


class QueueError(DispositionKernelError):
    """Base exception for queue resolution errors."""

    code: str = "QUEUE_ERROR"


class InvalidQueueFilterError(QueueError):
    """Queue filters are contradictory or malformed."""

    code: str = "INVALID_QUEUE_FILTER"

    def __init__(self, field: str, detail: str):
        self.field = field
        self.detail = detail
        super().__init__(f"Invalid queue filter {field}: {detail}")


# Audit-related exceptions


class AuditError(DispositionKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_entry_id: str, expected_hash: str, actual_hash: str):
        self.audit_entry_id = audit_entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_entry_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability-related exceptions


class ImmutabilityError(DispositionKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Persistence


class PersistenceError(DispositionKernelError):
    """
    The report store is unavailable.

    The only error class eligible for caller-transparent retry.
    """

    code: str = "PERSISTENCE_ERROR"
    retryable: bool = True

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Persistence failure during {operation}: {detail}")
