"""Error types for the Student Risk Scorer."""

from typing import Any, Optional


class InvalidInput(ValueError):
    """Raised when a value falls outside its documented domain."""

    def __init__(
        self,
        field: str,
        value: Any,
        reason: str,
        student_id: Optional[str] = None
    ):
        self.field = field
        self.value = value
        self.reason = reason
        self.student_id = student_id
        message = f"Invalid {field}={value!r}: {reason}"
        if student_id is not None:
            message = f"Student {student_id}: {message}"
        super().__init__(message)


class UnknownPolicy(KeyError):
    """Raised when a risk policy name is not registered."""

    def __init__(self, name: str, available):
        self.name = name
        self.available = sorted(available)
        super().__init__(f"Unknown risk policy '{name}'. Available: {', '.join(self.available)}")

    def __str__(self) -> str:
        return self.args[0]
