# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/config.py

"""
w3 Configuration Management

Reads a single toml file (default ~/.config/w3/config.toml):

  [service]   -- storage service DID and URL (store/*, upload/*)
  [access]    -- access service DID and URL (identity/*, voucher/*)
  [settings]  -- where the agent's settings (keys, delegations) are kept
  [insights]  -- insights endpoint

Every value has a public default, so a missing file is not an error.
Environment variables W3_SERVICE_URL, W3_SERVICE_DID, W3_ACCESS_URL and
W3_ACCESS_DID override the file.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


DEFAULT_CONFIG = Path("~/.config/w3/config.toml").expanduser()
DEFAULT_SETTINGS = Path("~/.config/w3/settings.json").expanduser()

DEFAULT_SERVICE_DID = "did:web:web3.storage"
DEFAULT_SERVICE_URL = "https://up.web3.storage"
DEFAULT_INSIGHTS_URL = "https://insights.web3.storage"


@dataclass
class ServiceConfig:
    """Connection details for one remote service."""
    did: str
    url: str

    def to_dict(self) -> dict:
        return {"did": self.did, "url": self.url}

    @classmethod
    def from_dict(cls, data: dict, default: "ServiceConfig" = None) -> "ServiceConfig":
        if isinstance(data, str):
            # Simple format: just a URL
            return cls(did=default.did if default else DEFAULT_SERVICE_DID, url=data)
        return cls(
            did=data.get("did", default.did if default else DEFAULT_SERVICE_DID),
            url=data.get("url", default.url if default else DEFAULT_SERVICE_URL),
        )


def _default_service() -> ServiceConfig:
    return ServiceConfig(did=DEFAULT_SERVICE_DID, url=DEFAULT_SERVICE_URL)


@dataclass
class W3Config:
    """Complete w3 client configuration."""
    service: ServiceConfig = field(default_factory=_default_service)
    access: ServiceConfig = field(default_factory=_default_service)
    settings_path: Path = DEFAULT_SETTINGS
    insights_url: str = DEFAULT_INSIGHTS_URL
    config_path: Optional[Path] = None

    def to_dict(self) -> dict:
        return {
            "service": self.service.to_dict(),
            "access": self.access.to_dict(),
            "settings": {"path": str(self.settings_path)},
            "insights": {"url": self.insights_url},
        }

    def validate(self) -> tuple[list[str], list[str]]:
        """
        Validate configuration, return (errors, warnings).
        Empty errors list means config is usable.
        """
        errors = []
        warnings = []

        for section, svc in (("service", self.service), ("access", self.access)):
            if not svc.url.startswith(("http://", "https://")):
                errors.append(f"[{section}] url '{svc.url}' is not an http(s) URL")
            elif svc.url.startswith("http://"):
                warnings.append(f"[{section}] url '{svc.url}' is not using https")
            if not svc.did.startswith("did:"):
                errors.append(f"[{section}] did '{svc.did}' is not a DID")

        if not self.insights_url.startswith(("http://", "https://")):
            errors.append(f"[insights] url '{self.insights_url}' is not an http(s) URL")

        if not self.settings_path.exists():
            warnings.append(f"settings file {self.settings_path} does not exist yet")

        return errors, warnings


_ENV_OVERRIDES = {
    "W3_SERVICE_URL": ("service", "url"),
    "W3_SERVICE_DID": ("service", "did"),
    "W3_ACCESS_URL": ("access", "url"),
    "W3_ACCESS_DID": ("access", "did"),
}


def _apply_env(config: dict, environ=None) -> dict:
    """Overlay W3_* environment variables onto the parsed toml dict."""
    environ = os.environ if environ is None else environ
    merged = {k: dict(v) if isinstance(v, dict) else v for k, v in config.items()}
    for var, (section, key) in _ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            merged.setdefault(section, {})
            if not isinstance(merged[section], dict):
                merged[section] = {"url": merged[section]}
            merged[section][key] = value
    return merged


def load_config(config_path: Path = None, environ=None) -> W3Config:
    """Load config from toml. Returns W3Config.

    Args:
        config_path: Path to config.toml. Default: $W3_CONFIG or
            ~/.config/w3/config.toml
        environ: Mapping used for W3_* overrides (default: os.environ)

    Returns:
        W3Config object

    Raises:
        FileNotFoundError: If config_path was given explicitly and is missing
        ValueError: If the file is not valid toml
    """
    env = os.environ if environ is None else environ
    explicit = config_path is not None
    if config_path is None and env.get("W3_CONFIG"):
        config_path = Path(env["W3_CONFIG"])
        explicit = True
    config_file = config_path or DEFAULT_CONFIG

    data = {}
    if config_file.exists():
        with open(config_file, "rb") as f:
            try:
                data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ValueError(f"Invalid config file {config_file}: {e}") from e
    elif explicit:
        raise FileNotFoundError(f"Config file not found: {config_file}")

    data = _apply_env(data, env)

    service = ServiceConfig.from_dict(data.get("service", {}), _default_service())
    # Access falls back to the storage service when not configured separately
    access = ServiceConfig.from_dict(data.get("access", {}), service)

    settings_path = DEFAULT_SETTINGS
    settings_section = data.get("settings", {})
    if "path" in settings_section:
        settings_path = Path(settings_section["path"]).expanduser()

    insights_url = data.get("insights", {}).get("url", DEFAULT_INSIGHTS_URL)

    return W3Config(
        service=service,
        access=access,
        settings_path=settings_path,
        insights_url=insights_url.rstrip("/"),
        config_path=config_file,
    )
