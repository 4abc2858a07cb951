"""Exception taxonomy for checklist definitions, sessions, and persistence."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any


class ChecklistError(Exception):
    """Base exception for crewtrainer."""

    context: dict[str, Any]

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = dict(context) if context is not None else {}

    def to_json_error(self) -> dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {
            "message": str(self),
            "code": self.__class__.__name__,
            "context": self.context,
        }


class DuplicateDefinitionError(ChecklistError, ValueError):
    """Raised when two definitions claim the same competency key."""


class InvalidDefinitionError(ChecklistError, ValueError):
    """Raised when declarative checklist content is malformed."""


class UnknownFieldError(ChecklistError, LookupError):
    """Raised when a toggle names a field the resolved definition does not own."""

    def __init__(self, field_name: str, definition_name: str) -> None:
        super().__init__(
            f"Field '{field_name}' is not part of checklist '{definition_name}'.",
            context={"field_name": field_name, "definition": definition_name},
        )
        self.field_name = field_name


class SectionLockedError(ChecklistError):
    """Raised when a toggle targets a section whose prerequisites are incomplete."""

    def __init__(self, section_title: str, missing_sections: Iterable[str]) -> None:
        missing = tuple(missing_sections)
        super().__init__(
            f"Section '{section_title}' is locked until complete: {', '.join(missing)}.",
            context={"section": section_title, "missing_sections": list(missing)},
        )
        self.section_title = section_title
        self.missing_sections = missing


class PersistenceError(ChecklistError, RuntimeError):
    """Raised when the persistence layer fails to confirm a write."""


class IncompleteChecklistError(ChecklistError):
    """Raised when completion is requested before every section is complete."""

    def __init__(self, session_id: int, outstanding: Iterable[str]) -> None:
        remaining = tuple(outstanding)
        super().__init__(
            f"Session {session_id} cannot be completed; outstanding checkpoints: {len(remaining)}.",
            context={"session_id": session_id, "outstanding": list(remaining)},
        )
        self.outstanding = remaining


class SessionNotFoundError(ChecklistError, LookupError):
    """Raised when a session or schedule record cannot be found."""


class SessionStateError(ChecklistError, ValueError):
    """Raised when a session is in an invalid state for the requested action."""


class ScheduleValidationError(ChecklistError, ValueError):
    """Raised when a training schedule request is incomplete or inconsistent."""


class CheckpointValueError(ChecklistError, TypeError):
    """Raised when a checkpoint write carries anything other than a bool."""

    def __init__(self, field_name: str, value: object) -> None:
        super().__init__(
            f"Checkpoint '{field_name}' must be set to True or False, not {value!r}.",
            context={"field_name": field_name, "value": repr(value)},
        )
        self.field_name = field_name
