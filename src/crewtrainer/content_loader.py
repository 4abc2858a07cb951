"""Load declarative checklist definitions from bundled JSON resources."""

from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any

from .errors import InvalidDefinitionError
from .models import ChecklistDefinition, ChecklistItem, ChecklistPrompt, ChecklistSection, SectionGate
from .registry import CompetencyRegistry, validate_definition

logger = logging.getLogger(__name__)

CONTENT_PACKAGE = "crewtrainer.content.checklists"


def _sub_labels(raw: dict[str, Any]) -> tuple[str, ...]:
    return tuple(str(value).strip() for value in raw.get("sub_labels", []) if str(value).strip())


def _item_from_dict(raw: dict[str, Any]) -> ChecklistItem:
    """Build a checkpoint item from raw JSON content."""
    field_name = str(raw.get("field", "")).strip()
    if not field_name:
        raise InvalidDefinitionError(f"Checklist item '{raw.get('label', '<unknown>')}' has no field.")
    return ChecklistItem(field_name=field_name, label=str(raw.get("label", "")), sub_labels=_sub_labels(raw))


def _prompt_from_dict(raw: dict[str, Any]) -> ChecklistPrompt:
    """Build an informational prompt from raw JSON content."""
    return ChecklistPrompt(label=str(raw["label"]), sub_labels=_sub_labels(raw))


def _section_from_dict(raw: dict[str, Any]) -> ChecklistSection:
    """Build a section from raw JSON content."""
    title = str(raw.get("title", "")).strip()
    if not title:
        raise InvalidDefinitionError("Checklist section has no title.")
    completion_field = raw.get("completion_field")
    if completion_field is not None:
        completion_field = str(completion_field).strip() or None
    return ChecklistSection(
        title=title,
        items=tuple(_item_from_dict(item) for item in raw.get("items", [])),
        prompts=tuple(_prompt_from_dict(prompt) for prompt in raw.get("prompts", [])),
        completion_field=completion_field,
        completion_label=str(raw.get("completion_label", "")),
        completion_hint=str(raw.get("completion_hint", "")),
    )


def _gate_from_dict(raw: dict[str, Any]) -> SectionGate:
    """Build a section gate from raw JSON content."""
    try:
        gated = int(raw["section"])
        requires = frozenset(int(index) for index in raw.get("requires", []))
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidDefinitionError(f"Malformed section gate: {raw!r}") from exc
    return SectionGate(gated_section=gated, prerequisites=requires)


def definition_from_dict(raw: dict[str, Any]) -> ChecklistDefinition:
    """Build and validate one checklist definition from raw JSON content."""
    training_type = str(raw.get("training_type", "")).strip()
    if not training_type:
        raise InvalidDefinitionError("Checklist definition has no training_type.")
    competency_type = raw.get("competency_type")
    competency_phase = raw.get("competency_phase")
    sections = tuple(_section_from_dict(section) for section in raw.get("sections", []))
    if not sections:
        raise InvalidDefinitionError(f"Checklist '{raw.get('title', '<unknown>')}' has no sections.")
    definition = ChecklistDefinition(
        training_type=training_type,
        competency_type=str(competency_type) if competency_type else None,
        competency_phase=str(competency_phase) if competency_phase else None,
        title=str(raw.get("title") or competency_type or training_type),
        sections=sections,
        gates=tuple(_gate_from_dict(gate) for gate in raw.get("gates", [])),
    )
    validate_definition(definition)
    return definition


def load_definitions() -> CompetencyRegistry:
    """Load bundled checklist definitions in file-name order."""
    entries = sorted(
        (entry for entry in resources.files(CONTENT_PACKAGE).iterdir() if entry.name.endswith(".json")),
        key=lambda entry: entry.name,
    )
    registry = CompetencyRegistry()
    for entry in entries:
        raw = json.loads(entry.read_text(encoding="utf-8-sig"))
        registry.register(definition_from_dict(raw))
    logger.debug("Loaded %d bundled checklist definitions", len(registry))
    return registry


def load_definitions_from_dir(path: Path) -> CompetencyRegistry:
    """Load checklist definitions from a directory for tests/tools."""
    registry = CompetencyRegistry()
    for file_path in sorted(path.glob("*.json")):
        raw = json.loads(file_path.read_text(encoding="utf-8-sig"))
        registry.register(definition_from_dict(raw))
    return registry

