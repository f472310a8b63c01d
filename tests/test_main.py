"""Tests for the server entry point."""

from historia.api import main as entry
from historia.config import SAVES_DIR_ENV, TIME_POLICY_ENV
from historia.systems import TimePolicy


def test_flags_reach_the_app(tmp_path, monkeypatch):
    saves = tmp_path / "mysaves"
    calls = []
    monkeypatch.setenv(SAVES_DIR_ENV, "saves")
    monkeypatch.setenv(TIME_POLICY_ENV, "ignore")
    monkeypatch.setattr(entry.uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))
    monkeypatch.setattr("sys.argv", ["historia-api", "--saves", str(saves), "--time-policy", "allow", "--port", "9001"])

    entry.main()

    target, kwargs = calls[0]
    assert target == "historia.api.main:get_app"
    assert kwargs["factory"] is True
    assert kwargs["port"] == 9001

    api = entry.get_app().state.api
    assert api.saves_dir == saves
    assert api.time_policy == TimePolicy.ALLOW


def test_module_builds_no_app_on_import():
    assert not hasattr(entry, "app")
