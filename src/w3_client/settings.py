# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/settings.py

"""
Settings import/export.

The exported form is plain JSON (what `w3 export-settings` prints):

    {
      "agent_secret": "M...",
      "account_secret": "M...",
      "email": "someone@example.org",
      "delegations": {"bafy...": {"ucan": "<jwt>", "alias": "laptop", "archive"?: "<base64 CAR>"}},
      ...
    }

In memory, secrets stay as formatted strings and delegations become
Delegation objects. A delegation that carries proofs is also written as a
base64 CAR under "archive" so its proof chain survives a reload.
"""

import base64
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from w3_client import principal
from w3_client import ucan as ucan_module
from w3_client.delegation import Delegation, DelegationError, import_delegation
from w3_client.principal import SigningPrincipal


logger = logging.getLogger(__name__)

SECRET_KEYS = ("secret", "agent_secret", "account_secret")
DELEGATION_KEYS = ("delegations", "created_delegations")


def _import_delegations(entries: dict) -> dict:
    delegations = {}
    for key, entry in (entries or {}).items():
        entry = entry or {}
        token = ucan_module.parse(entry.get("ucan"))
        if entry.get("archive"):
            delegation = import_delegation(base64.b64decode(entry["archive"]))
            if delegation.cid != ucan_module.link(token):
                raise DelegationError(f"Archive for {key} does not match its ucan")
        else:
            delegation = Delegation.create(ucan_module.write(token))
        delegations[key] = {"ucan": delegation, "alias": entry.get("alias")}
    return delegations


def _export_delegations(entries: dict) -> dict:
    output = {}
    for key, entry in (entries or {}).items():
        value = (entry or {}).get("ucan")
        if isinstance(value, Delegation):
            output[key] = {"ucan": ucan_module.format(value.data), "alias": entry.get("alias")}
            # Proof chains only survive as an archive
            if len(value.blocks) > 1:
                output[key]["archive"] = base64.b64encode(value.archive()).decode("ascii")
        else:
            token = ucan_module.format(ucan_module.parse(value))
            output[key] = {"ucan": token, "alias": entry.get("alias")}
    return output


def import_settings(settings_string: str) -> dict[str, Any]:
    """
    Build a settings mapping from a JSON string.

    Args:
        settings_string: JSON text, typically from `w3 export-settings`

    Returns:
        dict with secrets normalized to formatted strings and delegations
        as Delegation objects. Secrets that can't be decoded are dropped.

    Raises:
        json.JSONDecodeError: settings_string is not JSON
        ValueError: the JSON is not an object
        UCANError: a delegation entry is not a valid UCAN
    """
    imported = json.loads(settings_string)
    settings = {}

    if not imported:
        return settings
    if not isinstance(imported, dict):
        raise ValueError(f"Settings must be a JSON object, got {type(imported).__name__}")

    for key, value in imported.items():
        if key in SECRET_KEYS:
            parsed = principal.to_principal(value)
            if parsed:
                settings[key] = principal.format(parsed)
            else:
                logger.warning(f"import_settings: dropping undecodable {key}")
        elif key in DELEGATION_KEYS:
            settings[key] = _import_delegations(value)
        else:
            settings[key] = value

    if "agent_secret" not in settings or "account_secret" not in settings:
        logger.info("import_settings: agent or account secret missing, will be generated on use")

    return settings


def _format_secret(value) -> str:
    if isinstance(value, SigningPrincipal):
        return principal.format(value)
    return principal.format(principal.parse(value))


def export_settings(settings: dict[str, Any]) -> dict[str, Any]:
    """
    Build a JSON-ready dict out of a settings mapping.

    Secrets may be SigningPrincipal objects or formatted strings; either way
    they come out formatted. Delegations come out as JWT strings.
    """
    output = {}

    for key, value in settings.items():
        if key in SECRET_KEYS:
            output[key] = _format_secret(value)
        elif key in DELEGATION_KEYS:
            output[key] = _export_delegations(value)
        else:
            output[key] = value

    return output


class SettingsStore:
    """Settings persisted as exported JSON in a single file."""

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        """Read settings, returning an empty mapping when the file is missing."""
        if not self._path.exists():
            return {}
        return import_settings(self._path.read_text())

    def save(self, settings: dict[str, Any]) -> None:
        """Write settings atomically (temp file + rename), mode 0600."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps(export_settings(settings), indent=2)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".settings-")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(data)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self._path)
        except BaseException:
            os.unlink(tmp)
            raise
        logger.debug(f"settings saved to {self._path}")
