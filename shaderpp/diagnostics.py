import enum
import logging


class Severity(enum.Enum):
    WARNING = logging.WARNING
    ERROR = logging.ERROR


class Diagnostic:
    """A message reported while preprocessing, located at path:line."""

    def __init__(self, severity: Severity, path: str, line: int, message: str):
        self.severity = severity
        self.path = path
        self.line = line
        self.message = message

    def location(self) -> str:
        return f"{self.path}:{self.line}" if self.path else ""

    def __str__(self) -> str:
        location = self.location()
        prefix = f"{location}: " if location else ""
        return f"{prefix}{self.severity.name.lower()}: {self.message}"

    def __repr__(self) -> str:
        return (f"Diagnostic({self.severity.name}, {self.path!r}, "
                f"{self.line}, {self.message!r})")
