from pathlib import Path

import pytest
import yaml

from labboot.bootstrap.errors import PreconditionViolation
from labboot.bootstrap.marker import MarkerStore
from labboot.bootstrap.models import Outcome, RunState, StepStatus


def test_missing_marker_loads_empty_state(tmp_path: Path):
    store = MarkerStore(tmp_path / "state.yaml")
    state = store.load()
    assert state.steps == {}
    assert state.outcome is None
    assert state.describe() == "not-started"


def test_saved_marker_is_human_readable_yaml(tmp_path: Path):
    store = MarkerStore(tmp_path / "nested" / "state.yaml")
    state = RunState(run_id="r1")
    state.record("install-runtime", StepStatus.COMPLETED, attempts=2, duration_seconds=3.14159)
    state.record("start-database", StepStatus.TIMED_OUT, attempts=9, error="not ready")
    state.outcome = Outcome.TIMED_OUT
    state.failed_step = "start-database"
    store.save(state)

    text = store.path.read_text()
    assert text.startswith("# labboot bootstrap marker")
    doc = yaml.safe_load(text)
    assert doc["outcome"] == "timed-out"
    assert doc["failed_step"] == "start-database"
    assert list(doc["steps"]) == ["install-runtime", "start-database"]
    assert doc["steps"]["install-runtime"]["status"] == "completed"
    assert doc["steps"]["install-runtime"]["duration_seconds"] == 3.14

    again = store.load()
    assert again.is_complete("install-runtime")
    assert not again.is_complete("start-database")
    assert again.describe() == "timed-out(start-database)"


def test_save_leaves_no_temp_files(tmp_path: Path):
    store = MarkerStore(tmp_path / "state.yaml")
    store.save(RunState())
    store.save(RunState(outcome=Outcome.SUCCESS))
    assert [p.name for p in tmp_path.iterdir()] == ["state.yaml"]


def test_corrupt_marker_is_a_precondition_violation(tmp_path: Path):
    path = tmp_path / "state.yaml"
    path.write_text("steps: [this is: not: valid")
    with pytest.raises(PreconditionViolation):
        MarkerStore(path).load()

    path.write_text("- just\n- a list\n")
    with pytest.raises(PreconditionViolation):
        MarkerStore(path).load()

    path.write_text("outcome: exploded\n")
    with pytest.raises(PreconditionViolation):
        MarkerStore(path).load()


def test_clear_is_idempotent(tmp_path: Path):
    store = MarkerStore(tmp_path / "state.yaml")
    store.save(RunState())
    assert store.clear() is True
    assert store.clear() is False
    assert not store.exists()
