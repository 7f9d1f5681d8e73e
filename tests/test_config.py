"""Tests for Settings — process-level configuration."""

from ddpg_trader.config import Settings


class TestSettingsDefaults:
    """Test default values when no environment overrides are present."""

    def test_service_name(self, monkeypatch):
        monkeypatch.delenv("SERVICE_NAME", raising=False)
        assert Settings().service_name == "lstm-ddpg-trader"

    def test_training_defaults(self, monkeypatch):
        monkeypatch.delenv("DEFAULT_EPOCHS", raising=False)
        monkeypatch.delenv("DEFAULT_STEPS_PER_EPOCH", raising=False)
        s = Settings()
        assert s.default_epochs == 100
        assert s.default_steps_per_epoch == 100

    def test_default_agent_is_a_preset(self):
        from ddpg_trader.agent_config import PRESET_AGENT_CONFIGS
        assert Settings().default_agent in PRESET_AGENT_CONFIGS


class TestSettingsEnvironment:
    """Environment variables override defaults."""

    def test_env_overrides_epochs(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_EPOCHS", "7")
        assert Settings().default_epochs == 7

    def test_env_overrides_checkpoint_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CHECKPOINT_DIR", str(tmp_path))
        assert Settings().checkpoint_dir == str(tmp_path)

    def test_extra_env_ignored(self, monkeypatch):
        monkeypatch.setenv("SOME_UNRELATED_SETTING", "x")
        s = Settings()
        assert not hasattr(s, "some_unrelated_setting")
