"""Library exceptions for the bullmq_instrumentation package.

None of these are ever raised into the instrumented application: errors coming
from the queue library itself are re-raised untouched, and the errors defined
here are caught and logged by the instrumentation.
"""


class InstrumentationError(Exception):
    """Base exception for bullmq_instrumentation."""

    pass


class ConfigurationError(InstrumentationError, ValueError):
    """Raised when an instrumentation configuration is invalid."""

    pass


class MissingTargetError(InstrumentationError, AttributeError):
    """Raised when a class or operation to wrap does not exist.

    This usually means the installed queue library version does not match the
    operation table. The instrumentation logs it and skips that one wrap.
    """

    def __init__(self, role: str, operation: str | None = None) -> None:
        self.role = role
        self.operation = operation
        if operation is None:
            message = f"Collaborator does not expose {role!r}"
        else:
            message = f"{role} has no operation {operation!r}"
        super().__init__(message)


class CollaboratorNotFoundError(InstrumentationError, ImportError):
    """Raised when the instrumented queue library cannot be imported."""

    def __init__(self, module_name: str) -> None:
        self.module_name = module_name
        super().__init__(
            f"{module_name} is not installed. "
            f"Install it with: pip install bullmq-instrumentation[bullmq]"
        )


class CarrierError(InstrumentationError):
    """Raised when a job carries unusable propagation metadata."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"Malformed carrier in {field!r}: {message}")
