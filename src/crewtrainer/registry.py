"""Process-wide checklist catalog and schedule-to-checklist routing."""

from __future__ import annotations

import logging

from .errors import DuplicateDefinitionError, InvalidDefinitionError
from .models import ChecklistDefinition, ChecklistSection, ScheduleDescriptor

logger = logging.getLogger(__name__)

GENERIC_DEFINITION = ChecklistDefinition(
    training_type="AIQ",
    competency_type="Generic",
    competency_phase=None,
    title="AIQ Training",
    sections=(ChecklistSection(title="Done"),),
)


def validate_definition(definition: ChecklistDefinition) -> None:
    """Check structural invariants every registered definition must satisfy."""
    if not definition.sections:
        raise InvalidDefinitionError(f"Checklist '{definition.title}' has no sections.")
    if definition.competency_type is None and definition.competency_phase is not None:
        raise InvalidDefinitionError(f"Checklist '{definition.title}' has a phase but no competency_type.")
    _validate_unique_fields(definition)
    _validate_gates(definition)


def _validate_unique_fields(definition: ChecklistDefinition) -> None:
    """Validate that no field is bound twice within one definition."""
    seen: set[str] = set()
    for section in definition.sections:
        for name in section.field_names():
            if name in seen:
                raise InvalidDefinitionError(
                    f"Duplicate field '{name}' in checklist '{definition.title}'.",
                    context={"field_name": name, "definition": definition.title},
                )
            seen.add(name)


def _validate_gates(definition: ChecklistDefinition) -> None:
    """Validate gates reference existing sections and only earlier prerequisites."""
    gated: set[int] = set()
    count = len(definition.sections)
    for gate in definition.gates:
        if not 0 <= gate.gated_section < count:
            raise InvalidDefinitionError(
                f"Gate in '{definition.title}' targets unknown section {gate.gated_section}."
            )
        if gate.gated_section in gated:
            raise InvalidDefinitionError(f"Section {gate.gated_section} in '{definition.title}' is gated twice.")
        gated.add(gate.gated_section)
        if not gate.prerequisites:
            raise InvalidDefinitionError(f"Gate on section {gate.gated_section} in '{definition.title}' has no prerequisites.")
        for prerequisite in sorted(gate.prerequisites):
            if not 0 <= prerequisite < gate.gated_section:
                raise InvalidDefinitionError(
                    f"Gate on section {gate.gated_section} in '{definition.title}' "
                    f"requires section {prerequisite}, which is not an earlier section."
                )


class CompetencyRegistry:
    """Holds every known checklist definition keyed by competency type and phase.

    Competency names are unique across training types; lookups can still be narrowed to
    one training type so a course name never routes into another type's checklist.
    """

    def __init__(self) -> None:
        self._by_key: dict[tuple[str, str | None], ChecklistDefinition] = {}
        self._defaults: dict[str, ChecklistDefinition] = {}
        self._ordered: list[ChecklistDefinition] = []

    def register(self, definition: ChecklistDefinition) -> None:
        """Add a definition; a competency key may only be claimed once."""
        validate_definition(definition)
        if definition.competency_type is None:
            if definition.training_type in self._defaults:
                raise DuplicateDefinitionError(
                    f"Duplicate default checklist for training type '{definition.training_type}'.",
                    context={"training_type": definition.training_type},
                )
            self._defaults[definition.training_type] = definition
        else:
            key = (definition.competency_type, definition.competency_phase)
            if key in self._by_key:
                raise DuplicateDefinitionError(
                    f"Duplicate checklist definition: {definition.display_name()}",
                    context={"competency_type": key[0], "competency_phase": key[1]},
                )
            self._by_key[key] = definition
        self._ordered.append(definition)
        logger.debug("Registered checklist %s", definition.display_name())

    def get(
        self,
        competency_type: str,
        competency_phase: str | None = None,
        training_type: str | None = None,
    ) -> ChecklistDefinition | None:
        """Return the definition registered for an exact key, optionally only for one training type."""
        definition = self._by_key.get((competency_type, competency_phase))
        if definition is None or (training_type is not None and definition.training_type != training_type):
            return None
        return definition

    def default_for(self, training_type: str) -> ChecklistDefinition | None:
        """Return the default checklist for a training type."""
        return self._defaults.get(training_type)

    def definitions(self) -> list[ChecklistDefinition]:
        """Return definitions in registration order."""
        return list(self._ordered)

    def phases_for(self, competency_type: str, training_type: str | None = None) -> list[str]:
        """Return registered phases for a competency type in registration order."""
        return [
            definition.competency_phase
            for definition in self._ordered
            if definition.competency_type == competency_type
            and definition.competency_phase is not None
            and (training_type is None or definition.training_type == training_type)
        ]

    def all_field_names(self) -> list[str]:
        """Return the deduplicated union of every registered field in stable order."""
        seen: set[str] = set()
        names: list[str] = []
        for definition in self._ordered:
            for name in definition.field_names():
                if name not in seen:
                    seen.add(name)
                    names.append(name)
        return names

    def fields_for(self, competency_type: str, competency_phase: str | None = None) -> list[str]:
        """Return one definition's fields, or an empty list when the key is unregistered."""
        definition = self.get(competency_type, competency_phase)
        if definition is None:
            return []
        return definition.field_names()

    def __len__(self) -> int:
        return len(self._ordered)


class ChecklistRouter:
    """Selects the checklist that applies to one scheduled training."""

    def __init__(self, registry: CompetencyRegistry, fallback: ChecklistDefinition = GENERIC_DEFINITION) -> None:
        self.registry = registry
        self.fallback = fallback

    def resolve(self, schedule: ScheduleDescriptor) -> ChecklistDefinition:
        """Return the matching definition; unmatched schedules get the fallback, never an error."""
        competency_type = schedule.competency_type
        if competency_type:
            if schedule.competency_phase:
                phased = self.registry.get(competency_type, schedule.competency_phase, schedule.training_type)
                if phased is not None:
                    return phased
            plain = self.registry.get(competency_type, None, schedule.training_type)
            if plain is not None:
                return plain

        default = self.registry.default_for(schedule.training_type)
        if default is not None:
            return default

        logger.warning(
            "No checklist registered for %s / %s (%s); using generic checklist with no enforced checkpoints",
            competency_type,
            schedule.competency_phase,
            schedule.training_type,
        )
        return self.fallback
