from __future__ import annotations

import shutil
import sys
from collections.abc import Iterator
from pathlib import Path
from uuid import uuid4

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from crewtrainer.models import (  # noqa: E402
    ChecklistDefinition,
    ChecklistItem,
    ChecklistPrompt,
    ChecklistSection,
    SectionGate,
)


def _tmp_path_fixture() -> Iterator[Path]:
    """Provide per-test temporary directory path inside the workspace.

    This intentionally overrides pytest's builtin ``tmp_path`` fixture for this
    repository so temporary databases and content directories live under
    ``.tmp_pytest/`` in the project working directory.
    """
    base = ROOT / ".tmp_pytest"
    base.mkdir(parents=True, exist_ok=True)
    path = base / str(uuid4())
    path.mkdir(parents=True, exist_ok=False)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        try:
            next(base.iterdir())
        except StopIteration:
            base.rmdir()
        except FileNotFoundError:
            pass


tmp_path = pytest.fixture(name="tmp_path")(_tmp_path_fixture)


@pytest.fixture
def scenario_definition() -> ChecklistDefinition:
    """Observation (a, b), Demonstration (c), and an attested Questions section."""
    return ChecklistDefinition(
        training_type="AIQ",
        competency_type="Scenario",
        competency_phase=None,
        title="Scenario - AIQ Training",
        sections=(
            ChecklistSection(
                title="Observation",
                items=(ChecklistItem("a", "Observed a"), ChecklistItem("b", "Observed b")),
            ),
            ChecklistSection(title="Demonstration", items=(ChecklistItem("c", "Demonstrated c"),)),
            ChecklistSection(
                title="Questions",
                items=(ChecklistItem("q_item", "Asked a question"),),
                prompts=(ChecklistPrompt("What did you learn?"),),
                completion_field="q_done",
                completion_label="All questions answered",
            ),
        ),
    )


@pytest.fixture
def gated_definition() -> ChecklistDefinition:
    """Four sections where Section IV stays locked until Sections I-III are complete."""
    return ChecklistDefinition(
        training_type="AIQ",
        competency_type="Gated",
        competency_phase=None,
        title="Gated - AIQ Training",
        sections=(
            ChecklistSection(title="Section I", items=(ChecklistItem("s1_1", "Acknowledged"),)),
            ChecklistSection(
                title="Section II",
                items=(ChecklistItem("s2_1", "Knowledge 1"), ChecklistItem("s2_2", "Knowledge 2")),
            ),
            ChecklistSection(title="Section III", items=(ChecklistItem("s3_1", "Demonstrated"),)),
            ChecklistSection(title="Section IV", items=(ChecklistItem("s4_1", "Observed"),)),
        ),
        gates=(SectionGate(gated_section=3, prerequisites=frozenset({0, 1, 2})),),
    )
