# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/__init__.py

"""
w3 Client Library

A Python client for w3 decentralized storage: upload files and directories,
manage spaces, and create, sign, export and import UCAN delegations.

Basic usage:
    from w3_client import Client, ClientOptions, load_config

    client = Client(ClientOptions.from_config(load_config()))
    result = client.upload_file(Path("/path/to/file"))
    print(result.root_cid)

Delegations without a client:
    from w3_client import principal, write_delegation, import_delegation

    issuer = principal.generate()
    archive = write_delegation(issuer=issuer, to="did:key:z6Mk...", expiration=3600)
    delegation = import_delegation(archive)
"""

# Config
from w3_client.config import (
    ServiceConfig,
    W3Config,
    load_config,
)

# Types
from w3_client.types import (
    AgentMeta,
    Space,
    UploadEntry,
    UploadResult,
)

# Principals and delegations
from w3_client import principal
from w3_client.principal import PrincipalError, SigningPrincipal, Verifier
from w3_client.delegation import (
    Delegation,
    DelegationError,
    Failure,
    delegate,
    generate_delegation,
    import_delegation,
    import_token,
    write_delegation,
)
from w3_client.settings import SettingsStore, export_settings, import_settings

# Client
from w3_client.client import (
    Client,
    ClientOptions,
    ConfigError,
    RegistrationError,
    SpaceError,
    W3Error,
    create_client,
)
from w3_client.service_api import InvocationError, ServiceAPIError

# CLI
from w3_client.cli import cli

__all__ = [
    # Config
    "ServiceConfig",
    "W3Config",
    "load_config",
    # Types
    "AgentMeta",
    "Space",
    "UploadEntry",
    "UploadResult",
    # Principals and delegations
    "principal",
    "PrincipalError",
    "SigningPrincipal",
    "Verifier",
    "Delegation",
    "DelegationError",
    "Failure",
    "delegate",
    "generate_delegation",
    "import_delegation",
    "import_token",
    "write_delegation",
    # Settings
    "SettingsStore",
    "export_settings",
    "import_settings",
    # Client
    "Client",
    "ClientOptions",
    "create_client",
    # Errors
    "ConfigError",
    "InvocationError",
    "RegistrationError",
    "ServiceAPIError",
    "SpaceError",
    "W3Error",
    # CLI
    "cli",
]
