"""Tests for pkgsources.config -- env-var config loading and validation.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models). This tests validate_config()
and load_config() precedence.
"""

import logging

import pytest

from pkgsources.config import Config, load_config, validate_config

# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    def test_valid_config(self):
        validate_config(Config(store_url="https://sources.example.com/pkgs"))

    def test_trailing_slash_stripped(self):
        config = Config(store_url="https://sources.example.com/pkgs/")
        validate_config(config)
        assert config.store_url == "https://sources.example.com/pkgs"

    def test_invalid_url_no_scheme(self):
        with pytest.raises(ValueError, match="must start with http"):
            validate_config(Config(store_url="sources.example.com"))

    def test_invalid_url_no_host(self):
        with pytest.raises(ValueError, match="hostname"):
            validate_config(Config(store_url="https://"))

    def test_invalid_policy(self):
        config = Config(
            store_url="https://s.example.com", unknown_policy="ignore"
        )
        with pytest.raises(ValueError, match="unknown policy"):
            validate_config(config)

    def test_empty_manifest_name(self):
        config = Config(store_url="https://s.example.com", manifest_name=" ")
        with pytest.raises(ValueError, match="Manifest name"):
            validate_config(config)

    def test_insecure_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            validate_config(
                Config(store_url="https://s.example.com", insecure=True)
            )
        assert "SSL verification disabled" in caplog.text


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    def test_load_from_env_vars(self, monkeypatch):
        monkeypatch.setenv("PKGSOURCES_STORE_URL", "https://env.example.com")
        monkeypatch.setenv("PKGSOURCES_USERNAME", "admin")
        monkeypatch.setenv("PKGSOURCES_PASSWORD", "secret")

        config = load_config()

        assert config.store_url == "https://env.example.com"
        assert config.username == "admin"
        assert config.password == "secret"
        assert config.manifest_name == "sources.json"
        assert config.unknown_policy == "enqueue"

    def test_cli_args_override_env(self, monkeypatch):
        monkeypatch.setenv("PKGSOURCES_STORE_URL", "https://env.example.com")
        monkeypatch.setenv("PKGSOURCES_MANIFEST", "env.json")

        config = load_config(
            store_url="https://cli.example.com", manifest_name="cli.json"
        )

        assert config.store_url == "https://cli.example.com"
        assert config.manifest_name == "cli.json"

    def test_env_overrides_yaml(self, monkeypatch):
        monkeypatch.setenv("PKGSOURCES_STORE_URL", "https://env.example.com")
        config = load_config(
            yaml_fallbacks={"url": "https://yaml.example.com"}
        )
        assert config.store_url == "https://env.example.com"

    def test_yaml_fallbacks_used(self):
        config = load_config(
            yaml_fallbacks={
                "url": "https://yaml.example.com",
                "username": "yaml-user",
                "insecure": True,
                "timeout": 12,
                "manifest": "blobs.json",
                "unknown_policy": "skip",
            }
        )
        assert config.store_url == "https://yaml.example.com"
        assert config.username == "yaml-user"
        assert config.insecure is True
        assert config.timeout == 12.0
        assert config.manifest_name == "blobs.json"
        assert config.unknown_policy == "skip"

    def test_missing_url_raises(self):
        with pytest.raises(ValueError, match="Store URL not found"):
            load_config()

    def test_insecure_env_var(self, monkeypatch):
        monkeypatch.setenv("PKGSOURCES_STORE_URL", "https://s.example.com")
        monkeypatch.setenv("PKGSOURCES_INSECURE", "yes")
        assert load_config().insecure is True

    def test_insecure_env_false_beats_yaml(self, monkeypatch):
        monkeypatch.setenv("PKGSOURCES_INSECURE", "false")
        config = load_config(
            yaml_fallbacks={"url": "https://s.example.com", "insecure": True}
        )
        assert config.insecure is False

    def test_timeout_env_var(self, monkeypatch):
        monkeypatch.setenv("PKGSOURCES_STORE_URL", "https://s.example.com")
        monkeypatch.setenv("PKGSOURCES_TIMEOUT", "90")
        assert load_config().timeout == 90.0

    @pytest.mark.parametrize("value", ["0", "601", "fast"])
    def test_invalid_timeout(self, monkeypatch, value):
        monkeypatch.setenv("PKGSOURCES_STORE_URL", "https://s.example.com")
        monkeypatch.setenv("PKGSOURCES_TIMEOUT", value)
        with pytest.raises(ValueError, match="PKGSOURCES_TIMEOUT"):
            load_config()

    def test_policy_env_var_is_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("PKGSOURCES_STORE_URL", "https://s.example.com")
        monkeypatch.setenv("PKGSOURCES_UNKNOWN_POLICY", "SKIP")
        assert load_config().unknown_policy == "skip"

    def test_debug_flag(self):
        config = load_config(store_url="https://s.example.com", debug=True)
        assert config.debug is True
