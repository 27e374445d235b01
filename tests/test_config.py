"""Tests for threema_gateway.config: settings file, environment and key files."""

import pytest

from threema_gateway import config
from threema_gateway.crypto import PrivateKey
from threema_gateway.errors import ConfigError, InvalidEndpointError, InvalidKeyError

KEY_HEX = "998730fbcac1c57dbb181139de41d12835b3fae6af6acdf6ce91670262e88453"


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path, monkeypatch):
    """Redirect config dir to tmp_path so tests never touch real HOME."""
    monkeypatch.setattr(config, "get_config_dir", lambda: tmp_path)
    for name in ("ID", "SECRET", "ENDPOINT", "PRIVATE_KEY", "PRIVATE_KEY_FILE", "TIMEOUT"):
        monkeypatch.delenv(f"THREEMA_GATEWAY_{name}", raising=False)


def test_missing_credentials():
    with pytest.raises(ConfigError):
        config.load_settings()


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("THREEMA_GATEWAY_ID", "*3MAGWID")
    monkeypatch.setenv("THREEMA_GATEWAY_SECRET", "s3cret")
    monkeypatch.setenv("THREEMA_GATEWAY_PRIVATE_KEY", KEY_HEX)
    settings = config.load_settings()
    assert settings.id == "*3MAGWID"
    assert settings.secret == "s3cret"
    assert settings.endpoint is None
    assert settings.private_key == PrivateKey.from_hex(KEY_HEX)
    assert "s3cret" not in repr(settings)


def test_settings_from_toml(tmp_path):
    (tmp_path / "config.toml").write_text(
        'id = "*TOMLGW1"\n'
        'secret = "fromtoml"\n'
        'endpoint = "https://gateway.example.com"\n'
        "timeout = 5\n"
    )
    settings = config.load_settings()
    assert settings.id == "*TOMLGW1"
    assert settings.endpoint == "https://gateway.example.com"
    assert settings.timeout == 5.0
    assert settings.private_key is None


def test_env_overrides_toml(tmp_path, monkeypatch):
    (tmp_path / "config.toml").write_text('id = "*TOMLGW1"\nsecret = "fromtoml"\n')
    monkeypatch.setenv("THREEMA_GATEWAY_SECRET", "fromenv")
    settings = config.load_settings()
    assert settings.id == "*TOMLGW1"
    assert settings.secret == "fromenv"


def test_invalid_toml(tmp_path):
    (tmp_path / "config.toml").write_text("id = \n")
    with pytest.raises(ConfigError):
        config.load_settings()


def test_invalid_timeout(monkeypatch):
    monkeypatch.setenv("THREEMA_GATEWAY_ID", "*3MAGWID")
    monkeypatch.setenv("THREEMA_GATEWAY_SECRET", "s3cret")
    monkeypatch.setenv("THREEMA_GATEWAY_TIMEOUT", "soon")
    with pytest.raises(ConfigError):
        config.load_settings()


def test_invalid_private_key(monkeypatch):
    monkeypatch.setenv("THREEMA_GATEWAY_ID", "*3MAGWID")
    monkeypatch.setenv("THREEMA_GATEWAY_SECRET", "s3cret")
    monkeypatch.setenv("THREEMA_GATEWAY_PRIVATE_KEY", "abcd")
    with pytest.raises(InvalidKeyError):
        config.load_settings()


def test_save_load_private_key_roundtrip(tmp_path):
    key = PrivateKey(b"\x01" * 32)
    path = tmp_path / "gateway.key"
    config.save_private_key(path, key)
    assert config.load_private_key(path) == key


def test_private_key_permissions(tmp_path):
    path = tmp_path / "perm.key"
    config.save_private_key(path, PrivateKey(b"\x02" * 32))
    assert path.stat().st_mode & 0o777 == 0o600


def test_private_key_file_setting(tmp_path, monkeypatch):
    path = tmp_path / "gateway.key"
    config.save_private_key(path, PrivateKey(b"\x03" * 32))
    monkeypatch.setenv("THREEMA_GATEWAY_ID", "*3MAGWID")
    monkeypatch.setenv("THREEMA_GATEWAY_SECRET", "s3cret")
    monkeypatch.setenv("THREEMA_GATEWAY_PRIVATE_KEY_FILE", str(path))
    assert config.load_settings().private_key == PrivateKey(b"\x03" * 32)


def test_load_private_key_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        config.load_private_key(tmp_path / "nope.key")


def test_builder_from_settings():
    settings = config.GatewaySettings(
        id="*3MAGWID",
        secret="s3cret",
        endpoint="https://gateway.example.com/",
        private_key=PrivateKey(b"\x04" * 32),
        timeout=7.0,
    )
    api = config.builder_from_settings(settings).into_e2e()
    assert api.lookups.conn.endpoint == "https://gateway.example.com"
    assert api.lookups.conn.timeout == 7.0


def test_builder_from_settings_bad_endpoint():
    settings = config.GatewaySettings(id="*3MAGWID", secret="s3cret", endpoint="gopher://x")
    with pytest.raises(InvalidEndpointError):
        config.builder_from_settings(settings)
