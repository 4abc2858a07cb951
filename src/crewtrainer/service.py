"""Application service for scheduling, running, and completing training sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Protocol

from .content_loader import load_definitions
from .errors import (
    CheckpointValueError,
    IncompleteChecklistError,
    ScheduleValidationError,
    SectionLockedError,
    SessionStateError,
    UnknownFieldError,
)
from .evaluator import (
    definition_complete,
    effective_section_complete,
    is_checked,
    missing_prerequisites,
    outstanding_fields,
    section_index_for_field,
)
from .models import ChecklistDefinition, Employee, ScheduleDescriptor, SessionRecord
from .progress import SessionStore
from .registry import ChecklistRouter, CompetencyRegistry

logger = logging.getLogger(__name__)

TRAINING_TYPES = ("AIQ", "LTO", "Compliance")
COMPETENCY_REQUIRED = {"AIQ", "Compliance"}


class CheckpointWriter(Protocol):
    """Persistence collaborator that accepts single-field checkpoint writes."""

    def update_field(self, session_id: int, field_name: str, value: bool) -> None: ...


@dataclass(frozen=True)
class SectionState:
    """Display state for one checklist section."""

    index: int
    title: str
    complete: bool
    unlocked: bool
    missing_prerequisites: tuple[str, ...]
    checked: int
    total: int


@dataclass(frozen=True)
class SessionView:
    """Everything a presentation layer needs to render one session."""

    record: SessionRecord
    schedule: ScheduleDescriptor
    definition: ChecklistDefinition
    sections: tuple[SectionState, ...]
    complete: bool


@dataclass(frozen=True)
class ActiveSession:
    """One in-progress session row for a trainer."""

    session_id: int
    schedule: ScheduleDescriptor
    started_at: str
    checklist_title: str


def toggle_checkpoint(
    record: SessionRecord,
    definition: ChecklistDefinition,
    field_name: str,
    value: bool,
    writer: CheckpointWriter,
) -> SessionRecord:
    """Validate and persist one checkpoint, returning the record as confirmed by the write.

    The given record is never modified; a rejected or failed write leaves the caller with
    the last confirmed state.
    """
    if not isinstance(value, bool):
        raise CheckpointValueError(field_name, value)
    section_index = section_index_for_field(definition, field_name)
    if section_index is None:
        raise UnknownFieldError(field_name, definition.display_name())

    missing = missing_prerequisites(definition, section_index, record)
    if missing:
        section = definition.sections[section_index]
        missing_titles = [definition.sections[index].title for index in missing]
        logger.warning("Rejected %s: section '%s' is locked", field_name, section.title)
        raise SectionLockedError(section.title, missing_titles)

    writer.update_field(record.id, field_name, value)
    logger.info("Session %s: %s -> %s", record.id, field_name, value)
    fields = dict(record.fields)
    fields[field_name] = value
    return replace(record, fields=fields)


def section_states(definition: ChecklistDefinition, record: SessionRecord) -> tuple[SectionState, ...]:
    """Return per-section completion and lock state."""
    states: list[SectionState] = []
    for index, section in enumerate(definition.sections):
        names = section.field_names()
        missing = missing_prerequisites(definition, index, record)
        states.append(
            SectionState(
                index=index,
                title=section.title,
                complete=effective_section_complete(definition, index, record),
                unlocked=not missing,
                missing_prerequisites=tuple(definition.sections[item].title for item in missing),
                checked=len([name for name in names if is_checked(record, name)]),
                total=len(names),
            )
        )
    return tuple(states)


class TrainingService:
    """Coordinates checklist definitions with persisted training sessions."""

    def __init__(self, db_path: Path | str, registry: CompetencyRegistry | None = None) -> None:
        """Initialize service with database path and checklist catalog."""
        self.registry = registry if registry is not None else load_definitions()
        self.router = ChecklistRouter(self.registry)
        self.store = SessionStore(db_path)

    def list_employees(self) -> list[Employee]:
        """Return all employees."""
        return self.store.list_employees()

    def create_employee(self, display_name: str) -> Employee:
        """Create employee by display name."""
        return self.store.create_employee(display_name.strip())

    def delete_employee(self, employee_id: int) -> bool:
        """Delete one employee by id."""
        return self.store.delete_employee(employee_id)

    def field_catalog(self) -> list[str]:
        """Return every checkpoint field across all registered checklists."""
        return self.registry.all_field_names()

    def resolve(self, schedule: ScheduleDescriptor) -> ChecklistDefinition:
        """Return the checklist that applies to a schedule."""
        return self.router.resolve(schedule)

    def competency_choices(self, training_type: str) -> list[tuple[str, list[str]]]:
        """Return (competency type, phases) pairs registered for a training type."""
        choices: dict[str, list[str]] = {}
        for definition in self.registry.definitions():
            if definition.training_type != training_type or definition.competency_type is None:
                continue
            phases = choices.setdefault(definition.competency_type, [])
            if definition.competency_phase is not None:
                phases.append(definition.competency_phase)
        return sorted(choices.items())

    def schedule_training(
        self,
        trainee_id: int,
        trainer_id: int,
        training_type: str,
        competency_type: str | None = None,
        competency_phase: str | None = None,
        training_date: str | None = None,
        notes: str | None = None,
    ) -> ScheduleDescriptor:
        """Validate and schedule a training for a trainee."""
        competency_type = (competency_type or "").strip() or None
        competency_phase = (competency_phase or "").strip() or None
        if trainee_id == trainer_id:
            raise ScheduleValidationError("Trainee and trainer cannot be the same person.")
        for employee_id in (trainee_id, trainer_id):
            if self.store.get_employee(employee_id) is None:
                raise ScheduleValidationError(f"Employee {employee_id} does not exist.", context={"employee_id": employee_id})
        if training_type not in TRAINING_TYPES:
            raise ScheduleValidationError(
                f"Unknown training type '{training_type}'.", context={"training_type": training_type}
            )
        if training_type in COMPETENCY_REQUIRED and competency_type is None:
            raise ScheduleValidationError(f"Please select a competency for {training_type} training.")
        self._validate_phase(training_type, competency_type, competency_phase)

        schedule = self.store.schedule_training(
            trainee_id,
            trainer_id,
            training_type,
            competency_type,
            competency_phase,
            training_date or date.today().isoformat(),
            (notes or "").strip() or None,
        )
        logger.info("Scheduled %s training %s for employee %s", training_type, schedule.id, trainee_id)
        return schedule

    def _validate_phase(self, training_type: str, competency_type: str | None, competency_phase: str | None) -> None:
        """Require a registered phase for competencies modeled only per phase."""
        phases = self.registry.phases_for(competency_type, training_type) if competency_type else []
        if competency_phase is not None:
            if competency_phase not in phases:
                raise ScheduleValidationError(
                    f"Unknown phase '{competency_phase}' for {competency_type or 'this training'}.",
                    context={"competency_type": competency_type, "competency_phase": competency_phase},
                )
            return
        if phases and competency_type is not None and self.registry.get(competency_type, None, training_type) is None:
            raise ScheduleValidationError(
                f"Please select a phase for {competency_type} training.",
                context={"competency_type": competency_type, "phases": phases},
            )

    def list_scheduled(self) -> list[ScheduleDescriptor]:
        """Return trainings that are scheduled but not yet completed."""
        return self.store.list_schedules("scheduled")

    def start_session(self, schedule_id: int, trainer_id: int) -> int:
        """Start (or resume) the session for a scheduled training."""
        schedule = self.store.get_schedule(schedule_id)
        if schedule.status == "completed":
            raise SessionStateError(f"Training {schedule_id} is already completed.", context={"schedule_id": schedule_id})
        session_id = self.store.start_session(schedule_id, trainer_id)
        logger.info("Session %s started for schedule %s", session_id, schedule_id)
        return session_id

    def list_active_sessions(self, trainer_id: int) -> list[ActiveSession]:
        """Return a trainer's in-progress sessions, newest first."""
        return [
            ActiveSession(
                session_id=session_id,
                schedule=schedule,
                started_at=started_at,
                checklist_title=self.resolve(schedule).title,
            )
            for session_id, schedule, started_at in self.store.list_active_sessions(trainer_id)
        ]

    def open_session(self, session_id: int) -> SessionView:
        """Load one session with the field projection of every registered checklist."""
        projection = self.field_catalog()
        record = self.store.load_session(session_id, projection)
        schedule = self.store.get_schedule(record.schedule_id)
        definition = self.resolve(schedule)
        logger.debug("Session %s: read %d of %d projected fields", session_id, len(record.fields), len(projection))
        return SessionView(
            record=record,
            schedule=schedule,
            definition=definition,
            sections=section_states(definition, record),
            complete=definition_complete(definition, record),
        )

    def toggle_checkpoint(self, session_id: int, field_name: str, value: bool) -> SessionView:
        """Set one checkpoint on an in-progress session and return the refreshed view."""
        view = self.open_session(session_id)
        if view.record.status != "in_progress":
            raise SessionStateError(f"Session {session_id} is not in progress.", context={"session_id": session_id})
        record = toggle_checkpoint(view.record, view.definition, field_name, value, self.store)
        return replace(
            view,
            record=record,
            sections=section_states(view.definition, record),
            complete=definition_complete(view.definition, record),
        )

    def complete_session(self, session_id: int) -> SessionRecord:
        """Mark a session done; rejected unless every section of its checklist is complete."""
        view = self.open_session(session_id)
        if view.record.status != "in_progress":
            raise SessionStateError(f"Session {session_id} is not in progress.", context={"session_id": session_id})
        if not view.complete:
            raise IncompleteChecklistError(session_id, outstanding_fields(view.definition, view.record))
        completed_at = self.store.record_completion(session_id, view.record.schedule_id)
        logger.info("Session %s completed (%s)", session_id, view.definition.display_name())
        return replace(view.record, status="completed", completed_at=completed_at)

    def close(self) -> None:
        """Close the underlying store."""
        self.store.close()
