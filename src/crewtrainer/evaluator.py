"""Completion and section-gate predicates over a session's checkpoint fields.

Every function here is pure: results are recomputed from the full field mapping on each
call. A field counts as checked only when its value is exactly ``True``; missing fields,
``None``, ``0`` and other falsy or non-boolean values read as unchecked.
"""

from __future__ import annotations

from collections.abc import Mapping

from .models import ChecklistDefinition, ChecklistSection, SessionRecord

FieldSource = SessionRecord | Mapping[str, object]


def _fields_of(record: FieldSource) -> Mapping[str, object]:
    if isinstance(record, SessionRecord):
        return record.fields
    return record


def is_checked(record: FieldSource, field_name: str) -> bool:
    """Return whether a single checkpoint field is exactly true."""
    return _fields_of(record).get(field_name) is True


def section_complete(section: ChecklistSection, record: FieldSource) -> bool:
    """Return section completion.

    Attestation sections (those with a completion field) depend on that field alone and
    ignore their items and prompts. Other sections need every item checked, so an empty
    section is complete.
    """
    if section.completion_field is not None:
        return is_checked(record, section.completion_field)
    return all(is_checked(record, item.field_name) for item in section.items)


def definition_complete(definition: ChecklistDefinition, record: FieldSource) -> bool:
    """Return whether every section of the definition is complete."""
    return all(section_complete(section, record) for section in definition.sections)


def missing_prerequisites(definition: ChecklistDefinition, section_index: int, record: FieldSource) -> list[int]:
    """Return indexes of incomplete prerequisite sections, sorted ascending."""
    missing: set[int] = set()
    for gate in definition.gates:
        if gate.gated_section != section_index:
            continue
        for prerequisite in gate.prerequisites:
            if not section_complete(definition.sections[prerequisite], record):
                missing.add(prerequisite)
    return sorted(missing)


def is_section_unlocked(definition: ChecklistDefinition, section_index: int, record: FieldSource) -> bool:
    """Return True when no gate names the section or all its prerequisites are complete."""
    return not missing_prerequisites(definition, section_index, record)


def effective_section_complete(definition: ChecklistDefinition, section_index: int, record: FieldSource) -> bool:
    """Section completion as shown to trainers: a locked section never reads complete."""
    if not is_section_unlocked(definition, section_index, record):
        return False
    return section_complete(definition.sections[section_index], record)


def section_index_for_field(definition: ChecklistDefinition, field_name: str) -> int | None:
    """Return the index of the section owning a field, or None when no section does."""
    for index, section in enumerate(definition.sections):
        if field_name in section.field_names():
            return index
    return None


def outstanding_fields(definition: ChecklistDefinition, record: FieldSource) -> list[str]:
    """Return the unchecked fields that still block completion, in checklist order."""
    outstanding: list[str] = []
    for section in definition.sections:
        if section.completion_field is not None:
            if not is_checked(record, section.completion_field):
                outstanding.append(section.completion_field)
            continue
        outstanding.extend(item.field_name for item in section.items if not is_checked(record, item.field_name))
    return outstanding
