"""Core domain models for competency checklists and training sessions."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ChecklistItem:
    """One checkpoint bound to a persisted boolean field."""

    field_name: str
    label: str
    sub_labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class ChecklistPrompt:
    """Informational discussion prompt with no persisted field."""

    label: str
    sub_labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class ChecklistSection:
    """Named group of checkpoints, or an attestation group with one completion field."""

    title: str
    items: tuple[ChecklistItem, ...] = ()
    prompts: tuple[ChecklistPrompt, ...] = ()
    completion_field: str | None = None
    completion_label: str = ""
    completion_hint: str = ""

    def field_names(self) -> list[str]:
        """Return persisted fields owned by this section, items first."""
        names = [item.field_name for item in self.items]
        if self.completion_field is not None:
            names.append(self.completion_field)
        return names


@dataclass(frozen=True)
class SectionGate:
    """Keeps one section locked until its prerequisite sections are complete."""

    gated_section: int
    prerequisites: frozenset[int]


@dataclass(frozen=True)
class ChecklistDefinition:
    """Full checklist structure for one (competency type, phase) pair.

    A definition with ``competency_type`` of ``None`` is the default checklist for
    every competency of its ``training_type``.
    """

    training_type: str
    competency_type: str | None
    competency_phase: str | None
    title: str
    sections: tuple[ChecklistSection, ...]
    gates: tuple[SectionGate, ...] = ()

    @property
    def key(self) -> tuple[str | None, str | None]:
        return (self.competency_type, self.competency_phase)

    def field_names(self) -> list[str]:
        """Return every persisted field in section order, then item order."""
        return [name for section in self.sections for name in section.field_names()]

    def display_name(self) -> str:
        if self.competency_type is None:
            return self.title
        if self.competency_phase:
            return f"{self.competency_type} ({self.competency_phase})"
        return self.competency_type


@dataclass(frozen=True)
class SessionRecord:
    """Last confirmed persisted checkpoint state for one training session."""

    id: int
    schedule_id: int
    trainee_id: int
    fields: dict[str, bool] = field(default_factory=dict)
    status: str = "in_progress"
    started_at: str = ""
    completed_at: str | None = None


@dataclass(frozen=True)
class ScheduleDescriptor:
    """Which competency a session covers and who the trainee is."""

    id: int
    training_type: str
    competency_type: str | None
    competency_phase: str | None
    trainee_id: int
    trainee_name: str
    trainer_id: int
    trainer_name: str
    training_date: str = ""
    status: str = "scheduled"
    notes: str | None = None


@dataclass(frozen=True)
class Employee:
    """Employee who can train or be trained."""

    id: int
    display_name: str
