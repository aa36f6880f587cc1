# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/client.py

"""
w3 Client

High-level operations against the storage and access services. The client
keeps its state (agent and account keys, spaces, proofs, delegations it has
made) in a settings mapping and persists it through a SettingsStore when
one is configured.

Basic usage:
    from w3_client import Client, ClientOptions, load_config

    client = Client(ClientOptions.from_config(load_config()))
    space = client.create_space("photos")
    result = client.upload_file(Path("cat.jpg"))
    print(result.root_cid)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import requests

from w3_client import car
from w3_client import principal
from w3_client import upload as upload_module
from w3_client.config import (
    DEFAULT_INSIGHTS_URL,
    DEFAULT_SERVICE_DID,
    DEFAULT_SERVICE_URL,
    W3Config,
)
from w3_client.delegation import (
    DEFAULT_EXPIRATION,
    Delegation,
    delegate,
    matches,
)
from w3_client.principal import SigningPrincipal, Verifier
from w3_client.service_api import ServiceClient
from w3_client.settings import SettingsStore
from w3_client.types import AgentMeta, Space, UploadEntry, UploadResult


logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

FREE_PRODUCT = "product:free"


class W3Error(Exception):
    """Base exception for w3 client operations."""
    pass


class ConfigError(W3Error):
    """Raised when settings are missing or unusable."""
    pass


class RegistrationError(W3Error):
    """Raised when an email cannot be registered."""
    pass


class SpaceError(W3Error):
    """Raised for unknown spaces or proofs that don't describe a space."""
    pass


@dataclass
class ClientOptions:
    """Everything a Client needs to talk to the services."""
    service_did: str = DEFAULT_SERVICE_DID
    service_url: str = DEFAULT_SERVICE_URL
    access_did: str = DEFAULT_SERVICE_DID
    access_url: str = DEFAULT_SERVICE_URL
    insights_url: str = DEFAULT_INSIGHTS_URL
    settings: dict[str, Any] = field(default_factory=dict)
    store: Optional[SettingsStore] = None

    @classmethod
    def from_config(cls, config: W3Config) -> "ClientOptions":
        """Build options from config, loading settings from its settings path."""
        store = SettingsStore(config.settings_path)
        return cls(
            service_did=config.service.did,
            service_url=config.service.url,
            access_did=config.access.did,
            access_url=config.access.url,
            insights_url=config.insights_url,
            settings=store.load(),
            store=store,
        )


def _link(cid) -> dict:
    """DAG-JSON link form, safe to embed in a JWT payload."""
    return {"/": str(cid)}


class Client:
    """Client for the w3 storage and access services."""

    def __init__(self, options: ClientOptions = None, session: requests.Session = None):
        options = options or ClientOptions()
        session = session or requests.Session()
        self.options = options
        self.settings = options.settings
        self.store = options.store
        self.service = ServiceClient(options.service_url, options.service_did, session=session)
        self.access = ServiceClient(options.access_url, options.access_did, session=session)
        self.insights_url = options.insights_url.rstrip("/")

    def _save(self) -> None:
        if self.store is not None:
            self.store.save(self.settings)

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def _principal(self, key: str) -> SigningPrincipal:
        secret = self.settings.get(key)
        if secret is None:
            signer = principal.generate()
            self.settings[key] = principal.format(signer)
            self._save()
            logger.info(f"generated new {key.replace('_secret', '')} {signer.did()}")
            return signer
        signer = principal.to_principal(secret)
        if signer is None:
            raise ConfigError(f"Settings contain an unreadable {key}")
        return signer

    def identity(self) -> SigningPrincipal:
        """The agent principal (this device), created on first use."""
        return self._principal("agent_secret")

    def account(self) -> SigningPrincipal:
        """The account principal, created on first use."""
        return self._principal("account_secret")

    def agent(self) -> str:
        """DID of the agent."""
        return self.identity().did()

    # -------------------------------------------------------------------------
    # Invocation helpers
    # -------------------------------------------------------------------------

    def _resource(self) -> str:
        """Current space, falling back to the account."""
        return self.settings.get("current_space") or self.account().did()

    def _authorization(self, caps: list[dict], expiration: Optional[int] = None) -> list[Delegation]:
        """Proofs that let the agent invoke caps.

        When the resource is the account itself, the account key is at hand
        and signs a delegation to the agent. It is short-lived unless an
        absolute expiration is given.
        """
        proofs = self.proofs(caps)
        if proofs:
            return proofs
        resource = caps[0]["with"]
        if "account_secret" in self.settings and resource == self.account().did():
            return [delegate(
                self.account(),
                self.agent(),
                [{"with": resource, "can": c["can"]} for c in caps],
                expiration=expiration,
            )]
        return []

    def _invoke(self, service: ServiceClient, can: str, nb: dict = None, resource: str = None):
        resource = resource or self._resource()
        capability = {"with": resource, "can": can}
        if nb is not None:
            capability["nb"] = nb
        proofs = self._authorization([{"with": resource, "can": can}])
        logger.debug(f"{can} on {resource} with {len(proofs)} proof(s)")
        return service.invoke(self.identity(), capability, proofs)

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(self, email: Optional[str]) -> str:
        """
        Register the account by email.

        Raises:
            RegistrationError: email is invalid, or a different email is
                already registered
            ServiceAPIError: the access service rejected the request
        """
        if not email or not EMAIL_RE.match(email):
            raise RegistrationError(f"Invalid email provided for registration: {email}")

        saved = self.settings.get("email")
        if saved and saved != email:
            raise RegistrationError(
                f"Trying to register a second email, {email}, while {saved} is already registered"
            )

        account = self.account()
        result = self._invoke(
            self.access,
            "identity/validate",
            nb={"as": f"mailto:{email}"},
            resource=account.did(),
        )
        self.settings["email"] = email
        self._save()

        if isinstance(result, dict) and result.get("message"):
            return result["message"]
        return f"Check {email} for a link to complete registration of {account.did()}"

    def check_registration(self) -> str:
        """Ask the access service who the account is registered as."""
        account = self.account()
        result = self._invoke(self.access, "identity/identify", resource=account.did())
        if isinstance(result, dict):
            return result.get("account", result.get("did", str(result)))
        return str(result)

    def whoami(self):
        """Ask the storage service to identify the account."""
        return self._invoke(self.service, "identity/identify", resource=self.account().did())

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    def list(self) -> list[UploadEntry]:
        """List all uploads in the current space."""
        result = self._invoke(self.service, "upload/list")
        items = result.get("results", []) if isinstance(result, dict) else result or []
        return [UploadEntry.from_service(item) for item in items]

    def upload(self, car_bytes: bytes) -> str:
        """
        Store a CAR. Returns the CAR's CID.

        The service either already has the bytes ("done") or answers with a
        presigned URL to PUT them to ("upload").
        """
        link = car.link(car_bytes)
        result = self._invoke(
            self.service,
            "store/add",
            nb={"link": _link(link), "size": len(car_bytes)},
        )
        status = result.get("status") if isinstance(result, dict) else None
        if status == "upload":
            logger.info(f"uploading {len(car_bytes)} bytes for {link}")
            self.service.put(result["url"], car_bytes, result.get("headers"))
        else:
            logger.info(f"service already has {link}")
        return str(link)

    def remove(self, link):
        """Remove a stored CAR by CID."""
        return self._invoke(self.service, "store/remove", nb={"link": _link(link)})

    def linkroot(self, root, links: Iterable):
        """Register root as an upload made of the given CAR shards."""
        return self._invoke(
            self.service,
            "upload/add",
            nb={"root": _link(root), "shards": [_link(link) for link in links]},
        )

    def insights(self, link) -> dict:
        return self.service.get_json(f"{self.insights_url}/insights", params={"cid": str(link)})

    def _upload_packed(self, packed: upload_module.PackResult, path: Optional[str]) -> UploadResult:
        car_cid = self.upload(packed.car)
        self.linkroot(packed.root, [car_cid])
        return UploadResult(
            root_cid=str(packed.root),
            car_cid=car_cid,
            size=packed.size,
            path=path,
            uploaded_at=datetime.now(timezone.utc),
            shards=[car_cid],
        )

    def upload_file(self, data: Union[bytes, Path], name: str = None) -> UploadResult:
        """Upload a file; the result's root_cid addresses its contents.

        Files larger than one chunk get a DAG-CBOR file node as root, which
        gateways do not serve as a UnixFS file.
        """
        packed = upload_module.pack_file(data, name=name)
        return self._upload_packed(packed, str(data) if isinstance(data, Path) else name)

    def upload_directory(self, files) -> UploadResult:
        """
        Upload files under a container directory, preserving paths.

        Args:
            files: A directory Path or (relative_path, contents) pairs
        """
        packed = upload_module.pack_directory(files)
        return self._upload_packed(packed, str(files) if isinstance(files, Path) else None)

    # -------------------------------------------------------------------------
    # Spaces
    # -------------------------------------------------------------------------

    def _spaces(self) -> dict:
        return self.settings.setdefault("spaces", {})

    def spaces(self) -> list[Space]:
        return [Space.from_dict(did, meta) for did, meta in self._spaces().items()]

    def current_space(self) -> Optional[Space]:
        did = self.settings.get("current_space")
        if not did:
            return None
        return Space.from_dict(did, self._spaces().get(did, {}))

    def set_current_space(self, did: str) -> None:
        if did not in self._spaces():
            raise SpaceError(f"Unknown space: {did}")
        self.settings["current_space"] = did
        self._save()

    def create_space(self, name: str = None) -> Space:
        """
        Create a space with an optional name.

        The space key signs a non-expiring delegation of every ability to the
        agent and is then discarded; that delegation is the agent's proof.
        """
        space = principal.generate()
        proof = delegate(
            space,
            self.agent(),
            [{"with": space.did(), "can": "*"}],
            expiration=float("inf"),
        )
        self._spaces()[space.did()] = {"name": name, "registered": False}
        self._add_proof(proof, alias=name)
        if not self.settings.get("current_space"):
            self.settings["current_space"] = space.did()
        self._save()
        logger.info(f"created space {space.did()} ({name or 'unnamed'})")
        return Space(did=space.did(), name=name)

    def add_space(self, proof: Delegation) -> Space:
        """Add a space from a proof delegated to this agent."""
        if proof.audience != self.agent():
            raise SpaceError(
                f"Proof is for {proof.audience}, not this agent {self.agent()}"
            )
        resources = {c.get("with") for c in proof.capabilities}
        spaces = sorted(r for r in resources if isinstance(r, str) and r.startswith("did:key:"))
        if not spaces:
            raise SpaceError("Proof does not delegate capabilities on a space")
        did = spaces[0]
        name = proof.meta.get("name")
        self._spaces().setdefault(did, {"name": name, "registered": False})
        self._add_proof(proof, alias=name)
        self._save()
        return Space.from_dict(did, self._spaces()[did])

    def register_space(self, email: str) -> None:
        """Register the current space with the service under the free product."""
        space = self.current_space()
        if space is None:
            raise SpaceError("No current space; create one with create_space()")
        if not email or not EMAIL_RE.match(email):
            raise RegistrationError(f"Invalid email provided for registration: {email}")
        self._invoke(
            self.access,
            "voucher/redeem",
            nb={"product": FREE_PRODUCT, "identity": f"mailto:{email}", "space": space.did},
            resource=space.did,
        )
        self._spaces()[space.did]["registered"] = True
        self._save()

    # -------------------------------------------------------------------------
    # Proofs and delegations
    # -------------------------------------------------------------------------

    def _add_proof(self, proof: Delegation, alias: str = None) -> None:
        self.settings.setdefault("delegations", {})[str(proof.cid)] = {
            "ucan": proof,
            "alias": alias,
        }

    def proofs(self, caps: Optional[list[dict]] = None) -> list[Delegation]:
        """
        Unexpired delegations to this agent matching caps.

        Empty or missing caps return all proofs.
        """
        agent = self.agent()
        found = []
        for entry in self.settings.get("delegations", {}).values():
            proof = entry["ucan"]
            if proof.audience != agent or proof.is_expired():
                continue
            if matches(proof, caps):
                found.append(proof)
        return found

    def add_proof(self, proof: Delegation) -> Delegation:
        """Add a delegation whose audience is this agent."""
        self._add_proof(proof, alias=proof.meta.get("name"))
        self._save()
        return proof

    def delegations(self, caps: Optional[list[dict]] = None) -> list[Delegation]:
        """Delegations this agent created for others, matching caps."""
        metas = self.settings.get("delegation_meta", {})
        found = []
        for key, entry in self.settings.get("created_delegations", {}).items():
            created = entry["ucan"]
            if not matches(created, caps):
                continue
            meta = metas.get(key) or {"name": entry.get("alias") or "agent", "type": "device"}
            found.append(Delegation(created.root, created.blocks, {"audience": meta}))
        return found

    def create_delegation(
        self,
        audience: Union[str, Verifier],
        abilities: list[str],
        expiration: Optional[int] = None,
        audience_meta: Optional[AgentMeta] = None,
    ) -> Delegation:
        """
        Delegate abilities on the current space to audience.

        Args:
            audience: DID or principal receiving the delegation
            abilities: e.g. ["store/add", "upload/*"]
            expiration: Seconds from now (default 30 days)
            audience_meta: Who the audience is (default: agent/device)
        """
        audience_did = audience.did() if isinstance(audience, Verifier) else audience
        if not isinstance(audience_did, str) or not audience_did.startswith("did:"):
            raise ValueError(f"Audience is not a DID: {audience!r}")
        if not abilities:
            raise ValueError("At least one ability is required")

        meta = audience_meta or AgentMeta()
        resource = self._resource()
        caps = [{"with": resource, "can": can} for can in abilities]
        lifetime = DEFAULT_EXPIRATION if expiration is None else int(expiration)
        expires_at = int(datetime.now(timezone.utc).timestamp()) + lifetime

        created = delegate(
            self.identity(),
            audience_did,
            caps,
            expiration=expires_at,
            proofs=self._authorization(caps, expiration=expires_at),
        )
        key = str(created.cid)
        self.settings.setdefault("created_delegations", {})[key] = {
            "ucan": created,
            "alias": meta.name,
        }
        self.settings.setdefault("delegation_meta", {})[key] = meta.to_dict()
        self._save()
        return Delegation(created.root, created.blocks, {"audience": meta.to_dict()})


def create_client(options: ClientOptions = None) -> Client:
    return Client(options)
