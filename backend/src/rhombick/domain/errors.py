"""
Typed failures raised by the domain, services and repositories.

The API layer maps each class to an HTTP status code and a stable
JSON error envelope. Nothing below the transport layer knows about HTTP.
"""


class InvoicingError(Exception):
    """Base class for all expected application failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(InvoicingError):
    """
    A required field is missing or a value is out of range.

    Carries field-level messages keyed by the offending field name.
    """

    def __init__(self, message: str, errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or {}

    @classmethod
    def for_field(cls, field_name: str, problem: str) -> "ValidationError":
        """Build an error describing a single field."""
        return cls(f"{field_name}: {problem}", {field_name: problem})


class NotFound(InvoicingError):
    """An entity or an item inside an invoice does not exist."""

    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.identifier = identifier


class Conflict(InvoicingError):
    """A uniqueness or reference constraint would be violated."""


class PreconditionFailed(InvoicingError):
    """
    Recomputation was attempted against an unresolved customer.

    This is an integrity fault on the server side, not a client mistake.
    """


class StorageUnavailable(InvoicingError):
    """The persistence backend could not be reached."""
