"""
Tests for the launch script's command-line handling.
"""

import pytest

from config.settings import Settings
from run_bot import apply_overrides, parse_args


class TestCommandLine:
    """Tests for parse_args() and apply_overrides()."""

    def test_no_flags_keep_settings(self):
        """Without flags the environment settings stand."""
        settings = apply_overrides(Settings(), parse_args([]))

        assert settings.llm.provider == "auto"
        assert settings.search.enabled is False
        assert settings.retrieval.enabled is False

    def test_flags_override(self):
        """Flags switch features on and set the provider and address."""
        args = parse_args([
            "--provider", "hosted", "--search", "--rag",
            "--data-path", "/srv/docs", "--host", "127.0.0.1", "--port", "9000",
        ])
        settings = apply_overrides(Settings(), args)

        assert settings.llm.provider == "hosted"
        assert settings.search.enabled is True
        assert settings.retrieval.enabled is True
        assert settings.retrieval.data_path == "/srv/docs"
        assert settings.server.host == "127.0.0.1"
        assert settings.server.port == 9000

    def test_no_discord_clears_token(self):
        """--no-discord disables the Discord front end."""
        settings = Settings()
        settings.discord.token = "abc"

        apply_overrides(settings, parse_args(["--no-discord"]))

        assert settings.discord.token is None

    def test_invalid_provider_rejected(self):
        """Unknown providers are a usage error."""
        with pytest.raises(SystemExit):
            parse_args(["--provider", "gemini"])

    def test_negative_flags_disable_features(self):
        """--no-search and --no-rag switch off env-enabled features."""
        settings = Settings()
        settings.search.enabled = True
        settings.retrieval.enabled = True

        apply_overrides(settings, parse_args(["--no-search", "--no-rag"]))

        assert settings.search.enabled is False
        assert settings.retrieval.enabled is False

    def test_feature_flags_unset_keep_env(self):
        """Omitting --search/--rag leaves env-enabled features on."""
        settings = Settings()
        settings.search.enabled = True
        settings.retrieval.enabled = True

        apply_overrides(settings, parse_args(["--port", "9000"]))

        assert settings.search.enabled is True
        assert settings.retrieval.enabled is True
