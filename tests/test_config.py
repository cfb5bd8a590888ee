from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from cvscan.config import ModelSettings, RunSettings, load_config, resolve_api_key
from cvscan.errors import ConfigError

EXAMPLE_CONFIG = Path(__file__).parent.parent / "config.example.json"


def test_example_config_loads() -> None:
    cfg = load_config(str(EXAMPLE_CONFIG))
    assert cfg.views
    for view in cfg.views.values():
        assert set(view.checklist()) == set(view.weights()) == set(view.score_checklist)


def test_view_checklist_and_weights(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "views": {
            "backend": {
                "pretty_name": "Backend engineer",
                "score_checklist": {
                    "python": {"question": "Has the candidate used Python professionally?", "weight": 2},
                    "remote": {"question": "Has the candidate worked remotely?"},
                },
                "questions": {"years": "How many years of experience?"},
            },
        },
    }))
    view = load_config(str(path)).views["backend"]
    assert view.checklist() == {
        "python": "Has the candidate used Python professionally?",
        "remote": "Has the candidate worked remotely?",
    }
    assert view.weights() == {"python": 2.0, "remote": 1.0}
    assert view.questions == {"years": "How many years of experience?"}


def test_missing_config_file(tmp_path) -> None:
    with pytest.raises(ConfigError, match="failed to read"):
        load_config(str(tmp_path / "nope.json"))


def test_malformed_config_file(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError, match="failed to parse"):
        load_config(str(path))


def test_invalid_config_file(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"views": {"x": {"score_checklist": {"k": {"weight": 1}}}}}))
    with pytest.raises(ConfigError, match="invalid config"):
        load_config(str(path))


def test_settings_defaults_and_bounds() -> None:
    run = RunSettings()
    assert (run.repeats, run.max_concurrency, run.retries, run.retry_delay_s) == (5, 3, 8, 5.0)
    with pytest.raises(ValidationError):
        RunSettings(max_concurrency=0)
    with pytest.raises(ValidationError):
        RunSettings(repeats=0)
    with pytest.raises(ValidationError):
        ModelSettings(api_key="")


def test_resolve_api_key_order(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", " from-env \n")
    assert resolve_api_key(" explicit ") == "explicit"
    assert resolve_api_key() == "from-env"
