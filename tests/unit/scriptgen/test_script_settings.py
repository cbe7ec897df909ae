import pytest

from scriptgen.config import ScriptSettings, validate_configuration


def test_defaults_when_environment_is_empty():
    assert validate_configuration() == ScriptSettings()


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("SCRIPTGEN_DATABASE_NAME", "Atlas")
    monkeypatch.setenv("SCRIPTGEN_FILE_GROWTH_MB", "16")
    monkeypatch.setenv("SCRIPTGEN_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("SCRIPTGEN_BLUEPRINT_PATH", "/tmp/blueprint.json")

    settings = validate_configuration()

    assert settings == ScriptSettings(
        database_name="Atlas",
        file_growth_mb=16,
        blueprint_path="/tmp/blueprint.json",
        log_level="debug",
    )


def test_all_invalid_settings_are_reported_together(monkeypatch):
    monkeypatch.setenv("SCRIPTGEN_DATABASE_NAME", "my db")
    monkeypatch.setenv("SCRIPTGEN_FILE_GROWTH_MB", "0")
    monkeypatch.setenv("SCRIPTGEN_LOG_LEVEL", "loud")

    with pytest.raises(RuntimeError) as exc_info:
        validate_configuration()

    message = str(exc_info.value)
    assert "SCRIPTGEN_DATABASE_NAME" in message
    assert "SCRIPTGEN_FILE_GROWTH_MB" in message
    assert "SCRIPTGEN_LOG_LEVEL" in message
