"""Structured exception hierarchy for the workflow editor and API."""

from typing import Any, Dict


class WorkflowError(Exception):
    """Base exception for workflow errors"""

    def __init__(self, message: str, workflow_id: str = "", **context):
        self.message = message
        self.workflow_id = workflow_id
        self.context = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = {"error_type": type(self).__name__, "error_message": self.message}
        if self.workflow_id:
            data["workflow_id"] = self.workflow_id
        data.update(self.context)
        return data


class WorkflowNotFoundError(WorkflowError):
    pass


class VersionNotFoundError(WorkflowError):
    pass


class ValidationError(WorkflowError):
    pass


class GraphValidationError(ValidationError):
    pass


class InvalidEdgeError(ValidationError):
    pass


class CrossWorkflowRestoreError(ValidationError):
    pass


class PersistenceError(WorkflowError):
    """Record store call failed; callers decide whether it is fatal."""


class SessionClosedError(WorkflowError):
    pass
