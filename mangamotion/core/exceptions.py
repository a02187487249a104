"""
MangaMotion Custom Exceptions

Custom exception classes for error handling throughout the MangaMotion system.
"""


class MangaMotionError(Exception):
    """Base exception for all MangaMotion errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# STORAGE ERRORS
# =============================================================================

class StorageError(MangaMotionError):
    """Raised when persisted state cannot be read or written."""
    pass


# =============================================================================
# REMOTE SERVICE ERRORS
# =============================================================================

class RemoteServiceError(MangaMotionError):
    """Base exception for failures of a remote inference service."""

    def __init__(self, service: str, reason: str):
        message = f"Remote service '{service}' error: {reason}"
        super().__init__(message, {"service": service, "reason": reason})
        self.service = service
        self.reason = reason


class TransportError(RemoteServiceError):
    """Raised on network failure, non-2xx status or timeout."""

    def __init__(self, service: str, reason: str, status_code: int = None):
        super().__init__(service, reason)
        self.status_code = status_code
        if status_code is not None:
            self.details["status_code"] = status_code


class ResponseShapeError(RemoteServiceError):
    """Raised when a response parses but carries no usable artifact."""

    def __init__(self, service: str, keys: list = None):
        super().__init__(service, "no usable artifact in response")
        self.details["keys"] = list(keys or [])


class TaskFailedError(RemoteServiceError):
    """Raised when a remote task explicitly reports an error status."""
    pass


class TaskTimeoutError(RemoteServiceError):
    """Raised when a remote task never finishes within the attempt budget."""

    def __init__(self, service: str, attempts: int):
        super().__init__(service, f"Task timed out after {attempts} status checks")
        self.attempts = attempts
        self.details["attempts"] = attempts


class RequestInProgressError(MangaMotionError):
    """Raised when an identical request is already in flight."""

    def __init__(self, token: str):
        super().__init__(
            "This request is already being processed",
            {"token": token}
        )
        self.token = token


# =============================================================================
# WORKFLOW ERRORS
# =============================================================================

class WorkflowError(MangaMotionError):
    """Base exception for workflow state errors."""
    pass


class StepBlockedError(WorkflowError):
    """Raised when a step is not reachable with the project's artifacts."""

    def __init__(self, step: str, reason: str):
        message = f"Step '{step}' is blocked: {reason}"
        super().__init__(message, {"step": step, "reason": reason})
        self.step = step


class InvalidTransitionError(WorkflowError):
    """Raised when a navigation between two steps is not allowed."""

    def __init__(self, current: str, target: str, reason: str = "transition not allowed"):
        message = f"Cannot move from '{current}' to '{target}': {reason}"
        super().__init__(message, {"current": current, "target": target})


class InvariantViolationError(WorkflowError):
    """Raised when a project's artifact chain is inconsistent."""

    def __init__(self, violations: list):
        message = f"Project invariants violated: {', '.join(violations)}"
        super().__init__(message, {"violations": violations})


class ProjectNotFoundError(WorkflowError):
    """Raised when a project is not found."""

    def __init__(self, project_id: str):
        super().__init__(f"Project not found: '{project_id}'", {"project_id": project_id})


class AnimationNotFoundError(WorkflowError):
    """Raised when an animation is not found in a project."""

    def __init__(self, project_id: str, animation_id: str):
        super().__init__(
            f"Animation '{animation_id}' not found in project '{project_id}'",
            {"project_id": project_id, "animation_id": animation_id}
        )


class StaleResultError(WorkflowError):
    """Raised when a project changed while a remote call for it was in flight."""

    def __init__(self, project_id: str, stage: str, field: str):
        super().__init__(
            f"Project '{project_id}' changed during {stage}, result discarded",
            {"project_id": project_id, "stage": stage, "field": field}
        )
