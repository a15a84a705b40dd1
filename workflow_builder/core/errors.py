"""
Error types raised by the workflow builder.
"""
from typing import Optional


class WorkflowBuilderError(Exception):
    """Base error."""
    pass


class GraphInvariantError(WorkflowBuilderError):
    """An edge or node mutation would break the graph's cardinality rules."""
    pass


class SaveValidationError(WorkflowBuilderError):
    """The graph cannot be saved as it stands; no remote call was made."""
    pass


class SchemaError(WorkflowBuilderError, ValueError):
    """A wire payload or exported document does not match the expected shape."""
    pass


class RemoteStoreError(WorkflowBuilderError):
    """The remote step store rejected a call or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
