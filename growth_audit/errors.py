"""
Exception taxonomy shared by the pipeline, services and routes.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class NotConfiguredError(PipelineError):
    """A required collaborator (persistence, external key) is not configured."""
    def __init__(self, message='Persistence is not configured.'):
        super().__init__(message)


class ValidationError(PipelineError):
    """Rejected input at intake. No job is created."""
    def __init__(self, message, field=None):
        self.field = field
        super().__init__(message)


class NotFoundError(PipelineError):
    """Unknown scan, lead or message identifier."""
    def __init__(self, kind, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.replace('_', ' ').capitalize()} not found: {identifier}")


class InvalidTransitionError(PipelineError):
    """The scan state machine refused a status change."""
    def __init__(self, scan_id, current, requested):
        self.scan_id = scan_id
        self.current = current
        self.requested = requested
        super().__init__(f"Scan {scan_id}: cannot move from {current} to {requested}")
