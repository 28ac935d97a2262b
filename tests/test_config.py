import pytest

from imagediff.config import OrchestratorConfig, Settings, load_settings


def test_defaults_without_environment():
    settings = load_settings({})

    assert settings == Settings()
    assert not settings.recognition_enabled
    assert settings.orchestrator.batch_size == 10
    assert settings.orchestrator.stuck_timeout == 40.0
    assert settings.orchestrator.grace_period == 10.0
    assert settings.orchestrator.max_resubmits == 3


def test_values_read_from_environment():
    env = {
        "IMAGEDIFF_SERVICE_URL": "https://svc.example.test/",
        "IMAGEDIFF_API_KEY": "token",
        "IMAGEDIFF_BATCH_SIZE": "4",
        "IMAGEDIFF_POLL_INTERVAL": "0.5",
        "IMAGEDIFF_CONVERSATION_ID": "conv-1",
        "IMAGEDIFF_LOG_LEVEL": "debug",
        "IMAGEDIFF_CHECK_PATH": "  ",
    }

    settings = load_settings(env)

    assert settings.service_url == "https://svc.example.test"
    assert settings.recognition_enabled
    assert settings.api_key == "token"
    assert settings.conversation_id == "conv-1"
    assert settings.log_level == "DEBUG"
    assert settings.check_path == Settings().check_path
    assert settings.orchestrator.batch_size == 4
    assert settings.orchestrator.poll_interval == 0.5


def test_invalid_number_raises():
    with pytest.raises(ValueError, match="IMAGEDIFF_POLL_TIMEOUT"):
        load_settings({"IMAGEDIFF_POLL_TIMEOUT": "ten minutes"})


def test_invalid_orchestrator_value_raises():
    with pytest.raises(ValueError):
        load_settings({"IMAGEDIFF_BATCH_SIZE": "0"})


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    for name in ("IMAGEDIFF_SERVICE_URL", "IMAGEDIFF_MAX_RESUBMITS"):
        # setenv + delenv makes monkeypatch remove whatever the .env load sets.
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "IMAGEDIFF_SERVICE_URL=https://dotenv.example.test\nIMAGEDIFF_MAX_RESUBMITS=5\n",
        encoding="utf-8",
    )

    settings = load_settings(dotenv_path=env_file)

    assert settings.service_url == "https://dotenv.example.test"
    assert settings.orchestrator.max_resubmits == 5


def test_environment_wins_over_dotenv(tmp_path, monkeypatch):
    monkeypatch.setenv("IMAGEDIFF_SERVICE_URL", "https://env.example.test")
    env_file = tmp_path / ".env"
    env_file.write_text("IMAGEDIFF_SERVICE_URL=https://dotenv.example.test\n", encoding="utf-8")

    settings = load_settings(dotenv_path=env_file)

    assert settings.service_url == "https://env.example.test"


def test_orchestrator_config_copy_and_validate():
    config = OrchestratorConfig().copy(batch_size=3)

    assert config.batch_size == 3
    assert config.to_dict()["batch_size"] == 3
    with pytest.raises(ValueError):
        OrchestratorConfig(poll_interval=-1).validate()
