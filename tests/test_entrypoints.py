from typing import Any

import pytest

import crewtrainer.__main__ as module_main
import crewtrainer.main as main


def test_module_entrypoint_calls_main_entry(monkeypatch: Any) -> None:
    called = {"value": 0}
    monkeypatch.setattr(module_main, "main_entry", lambda: called.__setitem__("value", 1))
    module_main.main()
    assert called["value"] == 1


def test_main_entry_exits_with_run_status(monkeypatch: Any) -> None:
    monkeypatch.setattr(main, "run", lambda: 3)
    with pytest.raises(SystemExit) as exc_info:
        main.main_entry()
    assert exc_info.value.code == 3
