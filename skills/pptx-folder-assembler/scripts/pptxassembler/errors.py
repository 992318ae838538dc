"""Custom exceptions for session config and package assembly errors."""

from __future__ import annotations


class ConfigValidationError(ValueError):
    """Raised when a session file or settings payload is invalid."""

    def __init__(self, issues: list[str]):
        self.issues = [str(i).strip() for i in issues if str(i).strip()]
        if not self.issues:
            self.issues = ["Invalid configuration"]
        super().__init__(self._format())

    def _format(self) -> str:
        lines = ["Configuration validation failed:"]
        for issue in self.issues:
            lines.append(f"- {issue}")
        return "\n".join(lines)


class AssemblyError(Exception):
    """Base class for failures raised while assembling a presentation."""


class CorruptArchive(AssemblyError):
    """Input bytes are not a readable OOXML presentation container."""


class MalformedTemplate(AssemblyError):
    """The archive opens but a required part or element is missing or invalid."""


class PartNotFound(AssemblyError, KeyError):
    """A part path was read that is not present in the package."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Part not found: {path}")

    def __str__(self) -> str:
        return f"Part not found: {self.path}"


class PartWriteConflict(AssemblyError):
    """A newly allocated part or relationship id collides with an existing one."""


class ImageFetchFailed(AssemblyError):
    """An image could not be fetched; recoverable, the image is skipped."""

    def __init__(self, location: str, reason: str):
        self.location = location
        self.reason = reason
        super().__init__(f"Could not fetch image {location}: {reason}")


class DanglingReference(AssemblyError):
    """Serialization refused because a reference does not resolve to a part."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("Package has unresolved references:\n" + "\n".join(f"- {p}" for p in self.problems))
