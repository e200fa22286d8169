from __future__ import annotations

import json

import pytest

from memory_search.config import Settings
from memory_search.relevance import MIN_ABSOLUTE_SCORE, RELEVANCE_RATIO
from memory_search.utils.calibration import coerce_unit_float, load_calibration_profile


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ["RELEVANCE_RATIO", "RELEVANCE_MIN_SCORE"]:
        monkeypatch.delenv(name, raising=False)


def test_defaults_match_module_constants() -> None:
    s = Settings(score_calibration_path="")
    assert s.relevance.ratio == RELEVANCE_RATIO
    assert s.relevance.min_score == MIN_ABSOLUTE_SCORE


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELEVANCE_RATIO", "0.4")
    monkeypatch.setenv("RELEVANCE_MIN_SCORE", "not-a-number")
    s = Settings(score_calibration_path="")
    assert s.relevance.ratio == pytest.approx(0.4)
    assert s.relevance.min_score == MIN_ABSOLUTE_SCORE


def test_calibration_profile_overrides(tmp_path) -> None:
    profile = tmp_path / "calibration.json"
    profile.write_text(json.dumps({"relevance": {"ratio": 0.3, "min_score": 5, "unknown": 1}}), encoding="utf-8")
    s = Settings(score_calibration_path=str(profile))
    assert s.relevance.ratio == pytest.approx(0.3)
    # clamped into [0, 1]
    assert s.relevance.min_score == 1.0


def test_malformed_profile_is_ignored(tmp_path) -> None:
    profile = tmp_path / "broken.json"
    profile.write_text("{oops", encoding="utf-8")
    assert load_calibration_profile(str(profile)) == {}
    assert load_calibration_profile(str(tmp_path / "missing.json")) == {}
    assert Settings(score_calibration_path=str(profile)).relevance.ratio == RELEVANCE_RATIO


@pytest.mark.parametrize(
    "value, expected",
    [("0.5", 0.5), (-1, 0.0), (2, 1.0), (None, 0.25), ("nan", 0.25)],
)
def test_coerce_unit_float(value, expected) -> None:
    assert coerce_unit_float(value, 0.25) == expected


def test_llm_configured_requires_key() -> None:
    assert Settings(openai_api_key="", score_calibration_path="").llm_configured is False
    assert Settings(openai_api_key="sk", score_calibration_path="").llm_configured is True
