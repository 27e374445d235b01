"""Gateway settings from ~/.config/threema-gateway/ and the environment."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from threema_gateway.api import ApiBuilder
from threema_gateway.connection import DEFAULT_TIMEOUT
from threema_gateway.crypto import PrivateKey
from threema_gateway.errors import ConfigError

ENV_PREFIX = "THREEMA_GATEWAY_"


@dataclass(frozen=True)
class GatewaySettings:
    id: str
    secret: str = field(repr=False)
    endpoint: str | None = None
    private_key: PrivateKey | None = field(default=None, repr=False)
    timeout: float = DEFAULT_TIMEOUT


def get_config_dir() -> Path:
    d = Path.home() / ".config" / "threema-gateway"
    d.mkdir(parents=True, exist_ok=True)
    return d


def config_path() -> Path:
    return get_config_dir() / "config.toml"


def save_private_key(path: Path, key: PrivateKey) -> None:
    path.write_text(key.to_hex() + "\n")
    path.chmod(0o600)


def load_private_key(path: Path) -> PrivateKey:
    try:
        return PrivateKey.from_hex(path.read_text())
    except OSError as e:
        raise ConfigError(f"Could not read private key file: {e}", path=str(path)) from e


def _read_toml() -> dict:
    p = config_path()
    if not p.exists():
        return {}
    try:
        return tomllib.loads(p.read_text())
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config file: {e}", path=str(p)) from e


def load_settings() -> GatewaySettings:
    """Read config.toml, then let THREEMA_GATEWAY_* environment variables override it."""
    cfg = _read_toml()

    def get(name: str) -> str | None:
        return os.environ.get(ENV_PREFIX + name.upper()) or cfg.get(name)

    gateway_id, secret = get("id"), get("secret")
    if not gateway_id or not secret:
        raise ConfigError("Gateway id and secret are required")

    private_key = None
    if key_hex := get("private_key"):
        private_key = PrivateKey.from_hex(key_hex)
    elif key_file := get("private_key_file"):
        private_key = load_private_key(Path(key_file).expanduser())

    timeout = get("timeout")
    try:
        timeout = float(timeout) if timeout is not None else DEFAULT_TIMEOUT
    except ValueError as e:
        raise ConfigError(f"Invalid timeout: {timeout!r}") from e

    return GatewaySettings(
        id=gateway_id,
        secret=secret,
        endpoint=get("endpoint"),
        private_key=private_key,
        timeout=timeout,
    )


def builder_from_settings(settings: GatewaySettings) -> ApiBuilder:
    builder = ApiBuilder(settings.id, settings.secret).with_timeout(settings.timeout)
    if settings.endpoint:
        builder.with_custom_endpoint(settings.endpoint)
    if settings.private_key is not None:
        builder.with_private_key(settings.private_key)
    return builder
