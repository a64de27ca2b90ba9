"""
core/errors.py -- Exception taxonomy shared by every FieldPass layer.

Only faults are exceptions. A scan that lands outside its window or a wrong
verify code is a routine outcome and travels as a ScanReason on a result
object (see grants/models.py), never as an exception.

The API layer maps these to HTTP status codes in api/main.py:
  ValidationError   -> 422
  NotFoundError     -> 404
  CollaboratorError -> 502

CaptureInProgressError and WorkflowStateError are raised by the client scan
workflow only and never reach the API.
"""


class FieldPassError(Exception):
    """Base class for all FieldPass errors."""

    code = "fieldpass_error"


class ValidationError(FieldPassError):
    """Malformed input: missing identifier, inverted time window, bad TTL."""

    code = "validation_error"


class NotFoundError(FieldPassError):
    """Unknown token or unknown referenced entity (audit, auditor, department)."""

    code = "not_found"


class CollaboratorError(FieldPassError):
    """A collaborator (HTTP API, directory lookup) was unreachable or failed.

    This is the only retryable class of error. The protocol itself never
    retries; callers apply their own backoff.
    """

    code = "collaborator_unavailable"


class CaptureInProgressError(FieldPassError):
    """A scan session already has an active capture; cancel or reset it first."""

    code = "capture_in_progress"


class WorkflowStateError(FieldPassError):
    """A scan session operation was called in a state that does not allow it."""

    code = "workflow_state"
