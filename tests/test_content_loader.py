from crewtrainer.content_loader import load_definitions
from crewtrainer.evaluator import definition_complete, is_section_unlocked
from crewtrainer.models import ScheduleDescriptor
from crewtrainer.registry import GENERIC_DEFINITION, ChecklistRouter

EXPECTED_FIELD_COUNTS = {
    ("Backline Production (Phase 1 & 2)", "Phase 1 Specialty"): 16,
    ("Backline Production (Phase 1 & 2)", "Phase 2 Roast Beef"): 15,
    ("Cashier & Dining Room", None): 16,
    ("Drive-Thru Operations", None): 18,
    ("Fry Station", None): 15,
    ("Guests Deserve Our Best", None): 11,
    ("Welcome Path Orientation", None): 6,
    ("Arby's Safety First", None): 13,
    ("Slicer Safety", None): 21,
}


def _schedule(training_type: str, competency_type: str | None, phase: str | None = None) -> ScheduleDescriptor:
    return ScheduleDescriptor(
        id=1,
        training_type=training_type,
        competency_type=competency_type,
        competency_phase=phase,
        trainee_id=1,
        trainee_name="Trainee",
        trainer_id=2,
        trainer_name="Trainer",
    )


def test_bundled_definitions_load() -> None:
    registry = load_definitions()
    assert len(registry) == 11
    for (competency_type, phase), count in EXPECTED_FIELD_COUNTS.items():
        assert len(registry.fields_for(competency_type, phase)) == count, (competency_type, phase)
    assert registry.default_for("LTO") is not None
    assert registry.default_for("Compliance") is not None
    assert registry.default_for("AIQ") is None


def test_bundled_field_catalog_is_unique_and_ordered() -> None:
    registry = load_definitions()
    names = registry.all_field_names()
    assert len(names) == len(set(names)) == 134
    assert names[0] == "bl1_obs_1"
    assert names[-1] == "lto_handson_completed"


def test_slicer_safety_certification_is_gated() -> None:
    definition = load_definitions().get("Slicer Safety")
    assert definition is not None
    assert len(definition.sections) == 4
    assert definition.sections[3].title.startswith("Section IV")
    gate = definition.gates[0]
    assert gate.gated_section == 3
    assert gate.prerequisites == frozenset({0, 1, 2})

    fields = {name: True for section in definition.sections[:3] for name in section.field_names()}
    assert is_section_unlocked(definition, 3, fields) is True
    fields["slicer_sec2_4"] = False
    assert is_section_unlocked(definition, 3, fields) is False


def test_orientation_sections_are_attested() -> None:
    definition = load_definitions().get("Welcome Path Orientation")
    assert definition is not None
    assert [section.completion_field for section in definition.sections] == [
        "orientation_welcome",
        "orientation_tour",
        "orientation_benefits",
        "orientation_responsibilities",
        "orientation_paperwork",
        "orientation_policies",
    ]
    assert all(section.prompts for section in definition.sections)
    assert definition_complete(definition, dict.fromkeys(definition.field_names(), True)) is True


def test_bundled_routing() -> None:
    router = ChecklistRouter(load_definitions())
    phase_two = router.resolve(_schedule("AIQ", "Backline Production (Phase 1 & 2)", "Phase 2 Roast Beef"))
    assert phase_two.title == "Backline Production - Phase 2 Roast Beef - AIQ Training"
    assert router.resolve(_schedule("Compliance", "Food Safety Refresher")).title == "Compliance Training"
    assert router.resolve(_schedule("LTO", None)).title == "LTO Training"
    assert router.resolve(_schedule("AIQ", "Brand New Station")) is GENERIC_DEFINITION


def test_compliance_prompt_section_is_vacuously_complete() -> None:
    definition = load_definitions().default_for("Compliance")
    assert definition is not None
    assert definition.field_names() == ["compliance_learninghub_completed"]
    assert definition_complete(definition, {}) is False
    assert definition_complete(definition, {"compliance_learninghub_completed": True}) is True
