"""Unit tests for settings loading."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from stageflow.config import StageflowSettings

_ENV_VARS = (
    "STAGEFLOW_LOG_LEVEL",
    "STAGEFLOW_LOG_JSON",
    "STAGEFLOW_DEBUG",
    "STAGEFLOW_DEFAULT_STAGE_TIMEOUT_MS",
    "STAGEFLOW_DEFAULT_MAX_ATTEMPTS",
    "STAGEFLOW_DEFAULT_BACKOFF_MULTIPLIER",
)


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_settings_defaults(clean_env: Path) -> None:
    settings = StageflowSettings()

    assert settings.log_level == "INFO"
    assert settings.log_json is True
    assert settings.debug is False
    assert settings.default_stage_timeout_ms == 60_000
    assert settings.default_max_attempts == 1
    assert settings.default_backoff_multiplier == 1.0


def test_settings_loads_from_dotenv(clean_env: Path) -> None:
    (clean_env / ".env").write_text(
        "\n".join(
            [
                "STAGEFLOW_LOG_LEVEL=debug",
                "STAGEFLOW_DEFAULT_MAX_ATTEMPTS=3",
                "STAGEFLOW_DEFAULT_BACKOFF_MULTIPLIER=2",
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = StageflowSettings()

    assert settings.log_level == "DEBUG"
    assert settings.default_max_attempts == 3
    assert settings.default_backoff_multiplier == 2.0


def test_environment_overrides_dotenv(clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (clean_env / ".env").write_text("STAGEFLOW_DEFAULT_STAGE_TIMEOUT_MS=1000\n", encoding="utf-8")
    monkeypatch.setenv("STAGEFLOW_DEFAULT_STAGE_TIMEOUT_MS", "250")

    assert StageflowSettings().default_stage_timeout_ms == 250


@pytest.mark.parametrize(
    "kwargs",
    [
        {"default_stage_timeout_ms": 0},
        {"default_max_attempts": 0},
        {"default_backoff_multiplier": 0},
        {"log_level": "LOUD"},
    ],
)
def test_settings_reject_invalid_values(clean_env: Path, kwargs) -> None:
    with pytest.raises(ValidationError):
        StageflowSettings(**kwargs)


def test_setup_logging_enables_debug_for_package(clean_env: Path) -> None:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    package_logger = logging.getLogger("stageflow")
    try:
        StageflowSettings(log_level="WARNING", debug=True).setup_logging()

        assert root.level == logging.WARNING
        assert package_logger.level == logging.DEBUG
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)
        package_logger.setLevel(logging.NOTSET)
