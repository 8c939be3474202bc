"""Tests for YAML client configuration loading.

Tests cover:
- load_client_config: file errors, YAML errors, ${ENV_VAR} substitution
- ClientConfig validation: cert/key pairing, positive timeouts, unknown keys
- ClientConfig.to_transport_options: named settings and raw option ids
"""

from pathlib import Path

import pytest

from httpwire.config_loader import ClientConfig, ConfigError, load_client_config
from httpwire.transport import TransportOption


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "client.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadClientConfig:
    def test_full_config(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, """
connect_timeout_ms: 200
timeout_ms: 1500
verify_ssl: false
follow_redirects: true
max_redirects: 3
user_agent: httpwire-test
headers:
  X-Trace: abc
  Accept: [application/json, text/plain]
""")
        config = load_client_config(path)

        assert config.connect_timeout_ms == 200
        assert config.timeout_ms == 1500
        assert config.verify_ssl is False
        assert config.follow_redirects is True
        assert config.max_redirects == 3
        assert config.user_agent == "httpwire-test"
        assert config.headers == {"X-Trace": "abc", "Accept": ["application/json", "text/plain"]}

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        config = load_client_config(write_config(tmp_path, ""))
        assert config == ClientConfig()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_client_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_client_config(write_config(tmp_path, "headers: [unclosed\n"))

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="mapping"):
            load_client_config(write_config(tmp_path, "- 1\n- 2\n"))

    def test_unknown_key_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid config structure"):
            load_client_config(write_config(tmp_path, "retries: 3\n"))

    def test_non_positive_timeout_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_client_config(write_config(tmp_path, "connect_timeout_ms: 0\n"))


class TestEnvSubstitution:
    def test_substitutes_nested_values(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HTTPWIRE_TOKEN", "s3cret")
        monkeypatch.setenv("HTTPWIRE_PROXY", "http://proxy.local:3128")
        path = write_config(tmp_path, """
proxy: ${HTTPWIRE_PROXY}
headers:
  Authorization: "Bearer ${HTTPWIRE_TOKEN}"
""")
        config = load_client_config(path)

        assert config.proxy == "http://proxy.local:3128"
        assert config.headers["Authorization"] == "Bearer s3cret"

    def test_unset_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("HTTPWIRE_UNSET", raising=False)
        path = write_config(tmp_path, "user_agent: ${HTTPWIRE_UNSET}\n")
        with pytest.raises(ConfigError, match="HTTPWIRE_UNSET"):
            load_client_config(path)

    def test_non_string_values_untouched(self, tmp_path: Path) -> None:
        config = load_client_config(write_config(tmp_path, "timeout_ms: 250\n"))
        assert config.timeout_ms == 250


class TestTlsPairs:
    def test_cert_without_key(self) -> None:
        with pytest.raises(ValueError, match="together"):
            ClientConfig(cert="client.pem")

    def test_key_without_cert(self) -> None:
        with pytest.raises(ValueError, match="together"):
            ClientConfig(key="client.key")

    def test_key_password_requires_key(self) -> None:
        with pytest.raises(ValueError):
            ClientConfig(key_password="pw")

    def test_complete_pair(self) -> None:
        config = ClientConfig(cert="client.pem", key="client.key", key_password="pw")
        options = config.to_transport_options()
        assert options[TransportOption.SSL_CERT] == "client.pem"
        assert options[TransportOption.SSL_KEY] == "client.key"
        assert options[TransportOption.KEY_PASSWORD] == "pw"


class TestToTransportOptions:
    def test_defaults(self) -> None:
        assert ClientConfig().to_transport_options() == {TransportOption.FOLLOW_LOCATION: False}

    def test_named_settings(self) -> None:
        config = ClientConfig(
            connect_timeout_ms=200,
            timeout_ms=1500,
            verify_ssl=False,
            ca_bundle="/etc/ssl/ca.pem",
            ciphers="HIGH:!aNULL",
            max_redirects=2,
            user_agent="ua",
            proxy="http://proxy:3128",
        )
        options = config.to_transport_options()

        assert options[TransportOption.CONNECT_TIMEOUT_MS] == 200
        assert options[TransportOption.TIMEOUT_MS] == 1500
        assert options[TransportOption.SSL_VERIFY_PEER] is False
        assert options[TransportOption.SSL_VERIFY_HOST] == 0
        assert options[TransportOption.CA_INFO] == "/etc/ssl/ca.pem"
        assert options[TransportOption.SSL_CIPHER_LIST] == "HIGH:!aNULL"
        assert options[TransportOption.MAX_REDIRECTS] == 2
        assert options[TransportOption.USER_AGENT] == "ua"
        assert options[TransportOption.PROXY] == "http://proxy:3128"

    def test_verify_ssl_true_sets_nothing(self) -> None:
        options = ClientConfig().to_transport_options()
        assert TransportOption.SSL_VERIFY_PEER not in options
        assert TransportOption.SSL_VERIFY_HOST not in options

    def test_raw_options_override_named(self) -> None:
        config = ClientConfig(timeout_ms=1500, options={155: 99})
        assert config.to_transport_options()[TransportOption.TIMEOUT_MS] == 99

    def test_raw_options_drop_non_integer_keys(self) -> None:
        config = ClientConfig(options={"verbose": True, True: 1, 10018: "raw-ua"})
        options = config.to_transport_options()

        assert options[TransportOption.USER_AGENT] == "raw-ua"
        assert "verbose" not in options
        assert set(options) == {TransportOption.FOLLOW_LOCATION, TransportOption.USER_AGENT}

    def test_raw_options_from_yaml(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "options:\n  156: 300\n  label: ignored\n")
        options = load_client_config(path).to_transport_options()
        assert options[TransportOption.CONNECT_TIMEOUT_MS] == 300
        assert "label" not in options
