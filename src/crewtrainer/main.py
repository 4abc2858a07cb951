"""CLI entrypoint for running competency training sessions."""

from __future__ import annotations

import argparse
import logging
import os
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from .errors import (
    IncompleteChecklistError,
    PersistenceError,
    ScheduleValidationError,
    SectionLockedError,
    SessionStateError,
    UnknownFieldError,
)
from .evaluator import is_checked
from .models import ScheduleDescriptor
from .service import SessionView, TrainingService

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
MENU_QUIT_COMMANDS = {"q"}
MENU_BACK_COMMANDS = {"b"}
DB_ENV_VAR = "CREWTRAINER_DB"
DEFAULT_DB_PATH = Path(".crewtrainer") / "training.db"


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _db_path(cli_value: str | None = None) -> Path | str:
    """Resolve database path from CLI flag, then environment, then default."""
    value = cli_value or os.environ.get(DB_ENV_VAR)
    if not value:
        return DEFAULT_DB_PATH
    if value == ":memory:":
        return value
    return Path(value)


def _service(db_path: Path | str | None = None) -> TrainingService:
    """Create app service with resolved database path."""
    return TrainingService(db_path=db_path if db_path is not None else _db_path())


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="crewtrainer", description="Competency checklist training sessions")
    parser.add_argument("command", nargs="?", default="play", choices=["play"])
    parser.add_argument("--db", default=None, help=f"SQLite database path (default: ${DB_ENV_VAR} or {DEFAULT_DB_PATH})")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return play_shell(db_path=_db_path(args.db))


def play_shell(input_fn: InputFn = input, print_fn: PrintFn = print, db_path: Path | str | None = None) -> int:
    """Run persistent menu-driven shell."""
    service = _service(db_path)
    try:
        selected = _select_employee(service, input_fn, print_fn)
        if selected is None:
            return 0
        employee_id, employee_name = selected
        try:
            while True:
                print_fn("\n=== Training ===")
                print_fn(f"Employee: {employee_name}")
                print_fn("1) Schedule training")
                print_fn("2) Active sessions")
                print_fn("3) Start a scheduled session")
                print_fn("4) Field catalog")
                print_fn("b) Back")
                print_fn("q) Quit")
                choice = input_fn("Choose: ").strip().lower()

                if choice == "1":
                    _schedule_flow(service, employee_id, input_fn, print_fn)
                elif choice == "2":
                    _active_sessions_flow(service, employee_id, input_fn, print_fn)
                elif choice == "3":
                    _start_session_flow(service, employee_id, input_fn, print_fn)
                elif choice == "4":
                    _field_catalog_flow(service, print_fn)
                elif choice in MENU_BACK_COMMANDS:
                    switched = _select_employee(service, input_fn, print_fn)
                    if switched is None:
                        return 0
                    employee_id, employee_name = switched
                elif choice in MENU_QUIT_COMMANDS:
                    return 0
                else:
                    print_fn("Invalid choice.")
        except QuitApp:
            return 0
    finally:
        service.close()


def _select_employee(service: TrainingService, input_fn: InputFn, print_fn: PrintFn) -> tuple[int, str] | None:
    """Select existing employee or create a new one."""
    while True:
        employees = service.list_employees()
        print_fn("\n=== Employees ===")
        if employees:
            for idx, employee in enumerate(employees, start=1):
                print_fn(f"{idx}) {employee.display_name}")
        else:
            print_fn("No employees yet.")
        print_fn("n) New employee")
        print_fn("d) Delete employee")
        print_fn("q) Quit")

        choice = input_fn("Select employee: ").strip().lower()
        if choice in MENU_QUIT_COMMANDS:
            return None
        if choice == "n":
            name = input_fn("New employee name: ").strip()
            if not name:
                print_fn("Employee name is required.")
                continue
            try:
                created = service.create_employee(name)
            except Exception:
                print_fn("Could not create employee (name may already exist).")
                continue
            return (created.id, created.display_name)
        if choice == "d":
            _delete_employee_flow(service, input_fn, print_fn)
            continue

        if choice.isdigit():
            index = int(choice) - 1
            if 0 <= index < len(employees):
                selected = employees[index]
                return (selected.id, selected.display_name)

        print_fn("Invalid employee selection.")


def _delete_employee_flow(service: TrainingService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Delete an employee with explicit confirmation safeguard."""
    employees = service.list_employees()
    if not employees:
        print_fn("No employees available to delete.")
        return

    print_fn("\nDelete employee")
    for idx, employee in enumerate(employees, start=1):
        print_fn(f"{idx}) {employee.display_name}")
    print_fn("b) Back")
    choice = input_fn("Choose employee to delete: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    if not choice.isdigit() or not (0 <= int(choice) - 1 < len(employees)):
        print_fn("Invalid choice.")
        return

    target = employees[int(choice) - 1]
    print_fn(
        f"WARNING: This permanently deletes '{target.display_name}' and all of their "
        "scheduled trainings and session checkpoints."
    )
    confirm = input_fn("Type YES to confirm deletion: ").strip()
    if confirm != "YES":
        print_fn("Deletion cancelled.")
        return
    if service.delete_employee(target.id):
        print_fn(f"Deleted employee '{target.display_name}'.")
    else:
        print_fn("Employee was not found.")


def _choose_index(count: int, choice: str) -> int | None:
    if not choice.isdigit():
        return None
    index = int(choice) - 1
    if not (0 <= index < count):
        return None
    return index


def _schedule_flow(service: TrainingService, trainer_id: int, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Schedule a training with the current employee as trainer."""
    trainees = [employee for employee in service.list_employees() if employee.id != trainer_id]
    print_fn("\n=== Schedule Training ===")
    if not trainees:
        print_fn("Add another employee to train first.")
        return
    for idx, employee in enumerate(trainees, start=1):
        print_fn(f"{idx}) {employee.display_name}")
    trainee_index = _choose_index(len(trainees), input_fn("Choose trainee: ").strip())
    if trainee_index is None:
        print_fn("Invalid choice.")
        return

    training_types = ["AIQ", "LTO", "Compliance"]
    for idx, training_type in enumerate(training_types, start=1):
        print_fn(f"{idx}) {training_type}")
    type_index = _choose_index(len(training_types), input_fn("Training type: ").strip())
    if type_index is None:
        print_fn("Invalid choice.")
        return
    training_type = training_types[type_index]

    competency: str | None = None
    phase: str | None = None
    if training_type == "AIQ":
        choices = service.competency_choices("AIQ")
        for idx, (name, _) in enumerate(choices, start=1):
            print_fn(f"{idx}) {name}")
        print_fn("o) Other competency")
        raw = input_fn("Competency: ").strip()
        if raw.lower() == "o":
            competency = input_fn("Competency name: ").strip()
        else:
            competency_index = _choose_index(len(choices), raw)
            if competency_index is None:
                print_fn("Invalid choice.")
                return
            competency, phases = choices[competency_index]
            if phases:
                for idx, item in enumerate(phases, start=1):
                    print_fn(f"{idx}) {item}")
                phase_index = _choose_index(len(phases), input_fn("Phase: ").strip())
                if phase_index is None:
                    print_fn("Invalid choice.")
                    return
                phase = phases[phase_index]
    elif training_type == "Compliance":
        competency = input_fn("Compliance course: ").strip()

    training_date = input_fn("Training date (YYYY-MM-DD, blank = today): ").strip() or None
    notes = input_fn("Notes (optional): ").strip() or None
    try:
        schedule = service.schedule_training(
            trainees[trainee_index].id,
            trainer_id,
            training_type,
            competency,
            phase,
            training_date,
            notes,
        )
    except ScheduleValidationError as exc:
        print_fn(str(exc))
        return
    print_fn(f"Training scheduled for {schedule.trainee_name} on {schedule.training_date}.")


def _start_session_flow(service: TrainingService, trainer_id: int, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Start a session for a scheduled training and open it."""
    schedules = [schedule for schedule in service.list_scheduled() if schedule.trainer_id == trainer_id]
    print_fn("\n=== Scheduled Trainings ===")
    if not schedules:
        print_fn("No scheduled trainings for you.")
        return
    for idx, schedule in enumerate(schedules, start=1):
        print_fn(f"{idx}) {schedule.training_date} {schedule.trainee_name} - {_competency_display(schedule)}")
    print_fn("b) Back")
    choice = input_fn("Choose training: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    index = _choose_index(len(schedules), choice)
    if index is None:
        print_fn("Invalid choice.")
        return
    try:
        session_id = service.start_session(schedules[index].id, trainer_id)
    except SessionStateError as exc:
        print_fn(str(exc))
        return
    _session_flow(service, session_id, input_fn, print_fn)


def _active_sessions_flow(service: TrainingService, trainer_id: int, input_fn: InputFn, print_fn: PrintFn) -> None:
    """List a trainer's in-progress sessions and open one."""
    sessions = service.list_active_sessions(trainer_id)
    print_fn("\n=== Active Sessions ===")
    if not sessions:
        print_fn("No active training sessions.")
        print_fn("Start a session from your scheduled trainings.")
        return
    for idx, active in enumerate(sessions, start=1):
        started = _format_local_time(active.started_at)
        print_fn(
            f"{idx}) {active.schedule.trainee_name} [{active.schedule.training_type}] "
            f"{_competency_display(active.schedule)} - started {started}"
        )
    print_fn("b) Back")
    print_fn("q) Quit")
    choice = input_fn("Choose session: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    if choice in MENU_QUIT_COMMANDS:
        raise QuitApp()
    index = _choose_index(len(sessions), choice)
    if index is None:
        print_fn("Invalid choice.")
        return
    _session_flow(service, sessions[index].session_id, input_fn, print_fn)


def _render_session(view: SessionView, print_fn: PrintFn) -> list[str]:
    """Print a session checklist and return field names in displayed order."""
    definition = view.definition
    record = view.record
    print_fn(f"\n=== {definition.title} ===")
    print_fn(f"Trainee: {view.schedule.trainee_name}")
    numbered: list[str] = []
    for state, section in zip(view.sections, definition.sections, strict=True):
        badge = "✓" if state.complete else "✗"
        print_fn(f"\n{section.title} {badge}")
        if not state.unlocked:
            print_fn(f"  (locked: complete {', '.join(state.missing_prerequisites)} first)")
        for item in section.items:
            numbered.append(item.field_name)
            mark = "x" if is_checked(record, item.field_name) else " "
            print_fn(f"  {len(numbered):>2}) [{mark}] {item.label}")
            for sub_label in item.sub_labels:
                print_fn(f"         • {sub_label}")
        for prompt in section.prompts:
            print_fn(f"      {prompt.label}")
            for sub_label in prompt.sub_labels:
                print_fn(f"         • {sub_label}")
        if section.completion_field is not None:
            numbered.append(section.completion_field)
            mark = "x" if is_checked(record, section.completion_field) else " "
            label = section.completion_label or f"{section.title} completed"
            print_fn(f"  {len(numbered):>2}) [{mark}] {label}")
            if section.completion_hint:
                print_fn(f"         {section.completion_hint}")
    print_fn("")
    print_fn("Ready to mark done." if view.complete else "Checklist incomplete.")
    return numbered


def _session_flow(service: TrainingService, session_id: int, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Toggle checkpoints and mark a session done."""
    while True:
        view = service.open_session(session_id)
        numbered = _render_session(view, print_fn)
        print_fn("#) Toggle checkpoint")
        print_fn("d) Done")
        print_fn("b) Back")
        print_fn("q) Quit")
        choice = input_fn("Choose: ").strip().lower()
        if choice in MENU_BACK_COMMANDS:
            return
        if choice in MENU_QUIT_COMMANDS:
            raise QuitApp()
        if choice == "d":
            try:
                service.complete_session(session_id)
            except IncompleteChecklistError as exc:
                print_fn(f"Cannot mark done: {len(exc.outstanding)} checkpoint(s) outstanding.")
                continue
            except (PersistenceError, SessionStateError) as exc:
                print_fn(f"Could not complete session: {exc}")
                continue
            print_fn("Training marked complete.")
            return
        index = _choose_index(len(numbered), choice)
        if index is None:
            print_fn("Invalid choice.")
            continue
        field_name = numbered[index]
        try:
            service.toggle_checkpoint(session_id, field_name, not is_checked(view.record, field_name))
        except SectionLockedError as exc:
            print_fn(f"Locked: complete {', '.join(exc.missing_sections)} first.")
        except (UnknownFieldError, SessionStateError) as exc:
            print_fn(str(exc))
        except PersistenceError as exc:
            print_fn(f"Not saved: {exc} Try again.")


def _field_catalog_flow(service: TrainingService, print_fn: PrintFn) -> None:
    """Show the checkpoint fields read when loading sessions."""
    fields = service.field_catalog()
    print_fn(f"\n=== Field Catalog ({len(fields)} fields) ===")
    for name in fields:
        print_fn(f"- {name}")


def _competency_display(schedule: ScheduleDescriptor) -> str:
    """Format competency type with optional phase."""
    if not schedule.competency_type:
        return schedule.training_type
    if schedule.competency_phase:
        return f"{schedule.competency_type} ({schedule.competency_phase})"
    return schedule.competency_type


def _format_local_time(timestamp: str) -> str:
    """Convert ISO timestamp to local human-readable datetime."""
    try:
        dt = datetime.fromisoformat(timestamp)
    except ValueError:
        return timestamp
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
