# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/delegation.py

"""
Capability delegations.

A Delegation is a root UCAN block plus the blocks of every proof it relies
on. Delegations travel as CAR archives (write_delegation / import_delegation)
or, for a single token, as a bare JWT (import_token).
"""

import logging
import time
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from multiformats import CID

from w3_client import car
from w3_client import ucan as ucan_module
from w3_client.principal import SigningPrincipal
from w3_client.ucan import Block, UCAN, UCANError


logger = logging.getLogger(__name__)

# 30 days
DEFAULT_EXPIRATION = 60 * 60 * 24 * 30

DEFAULT_ABILITIES = ["store/*", "upload/*"]


class DelegationError(ValueError):
    """Raised when an archive does not contain a usable delegation."""
    pass


@dataclass
class Failure:
    """Error value returned instead of raising."""
    message: str
    error: bool = True

    def __str__(self) -> str:
        return self.message


class Delegation:
    """A UCAN together with the blocks of its proof chain."""

    def __init__(self, root: Block, blocks: Optional[dict] = None, meta: Optional[dict] = None):
        self.root = root
        self.blocks = dict(blocks or {})
        self.blocks.setdefault(root.cid, root)
        self.meta = dict(meta or {})
        self._data = None

    @classmethod
    def create(cls, root: Block, blocks: Optional[dict] = None) -> "Delegation":
        return cls(root, blocks)

    @property
    def cid(self) -> CID:
        return self.root.cid

    @property
    def data(self) -> UCAN:
        if self._data is None:
            self._data = ucan_module.parse(self.root.bytes)
        return self._data

    @property
    def issuer(self) -> str:
        return self.data.issuer

    @property
    def audience(self) -> str:
        return self.data.audience

    @property
    def capabilities(self) -> list[dict]:
        return self.data.capabilities

    @property
    def expiration(self) -> Optional[int]:
        return self.data.expiration

    @property
    def not_before(self) -> Optional[int]:
        return self.data.not_before

    @property
    def nonce(self) -> Optional[str]:
        return self.data.nonce

    @property
    def facts(self) -> list[dict]:
        return self.data.facts

    @property
    def proofs(self) -> list[Union["Delegation", CID]]:
        """Proofs as Delegations when their block is present, else CIDs."""
        result = []
        for ref in self.data.proofs:
            try:
                cid = CID.decode(ref)
            except (KeyError, ValueError):
                # Inline JWT proof
                block = ucan_module.write(ucan_module.parse(ref))
                result.append(Delegation(block, self.blocks))
                continue
            block = self.blocks.get(cid)
            result.append(Delegation(block, self.blocks) if block else cid)
        return result

    def export(self) -> Iterator[Block]:
        """Yield every block of the chain, proofs first and root last."""
        seen = set()
        yield from self._export(seen)

    def _export(self, seen: set) -> Iterator[Block]:
        for proof in self.proofs:
            if isinstance(proof, Delegation) and proof.cid not in seen:
                yield from proof._export(seen)
        if self.cid not in seen:
            seen.add(self.cid)
            yield self.root

    def archive(self) -> bytes:
        return car.encode([self.cid], self.export())

    def is_expired(self, now: Optional[int] = None) -> bool:
        return ucan_module.is_expired(self.data, now)

    def __eq__(self, other) -> bool:
        return isinstance(other, Delegation) and self.cid == other.cid

    def __hash__(self) -> int:
        return hash(self.cid)

    def __repr__(self) -> str:
        return f"Delegation({self.cid}, {self.issuer} -> {self.audience})"


def delegate(
    issuer: SigningPrincipal,
    audience,
    capabilities: list[dict],
    expiration: Optional[int] = None,
    lifetime_in_seconds: int = ucan_module.DEFAULT_LIFETIME,
    not_before: Optional[int] = None,
    nonce: Optional[str] = None,
    facts: Optional[list[dict]] = None,
    proofs: Optional[list[Delegation]] = None,
) -> Delegation:
    """Issue a delegation, carrying along the blocks of its proofs."""
    proofs = proofs or []
    token = ucan_module.issue(
        issuer,
        audience,
        capabilities,
        lifetime_in_seconds=lifetime_in_seconds,
        expiration=expiration,
        not_before=not_before,
        nonce=nonce,
        facts=facts,
        proofs=[p.cid for p in proofs],
    )
    blocks = {}
    for proof in proofs:
        for block in proof.export():
            blocks[block.cid] = block
    root = ucan_module.write(token)
    logger.debug(f"delegate: {root.cid} {issuer.did()} -> {token.audience}")
    return Delegation(root, blocks)


def _capabilities_for(issuer: SigningPrincipal, abilities: list[str]) -> list[dict]:
    return [{"with": issuer.did(), "can": can} for can in abilities]


def generate_delegation(
    issuer: SigningPrincipal,
    to: str,
    expiration: Optional[int] = None,
    capabilities: Optional[list[dict]] = None,
    proofs: Optional[list[Delegation]] = None,
) -> Delegation:
    """
    Delegate store and upload capabilities from issuer to another DID.

    Args:
        issuer: Principal granting the capabilities
        to: Audience DID
        expiration: Seconds from now until the delegation expires
            (default 30 days)
        capabilities: Capabilities to grant (default: store/* and upload/*
            on the issuer's DID)
        proofs: Delegations proving the issuer holds the capabilities

    Returns:
        Delegation
    """
    lifetime = DEFAULT_EXPIRATION if expiration is None else int(expiration)
    return delegate(
        issuer,
        to,
        capabilities or _capabilities_for(issuer, DEFAULT_ABILITIES),
        expiration=int(time.time()) + lifetime,
        proofs=proofs,
    )


def write_delegation(
    issuer: SigningPrincipal,
    to: str,
    expiration: Optional[int] = None,
    capabilities: Optional[list[dict]] = None,
    proofs: Optional[list[Delegation]] = None,
) -> bytes:
    """Same as generate_delegation, returning the CAR archive bytes."""
    return generate_delegation(
        issuer, to, expiration=expiration, capabilities=capabilities, proofs=proofs
    ).archive()


def import_delegation(data: bytes) -> Delegation:
    """
    Read a delegation archive produced by write_delegation.

    Raises:
        CARError: archive is malformed
        DelegationError: archive has no roots or lacks the root block
    """
    roots, blocks = car.decode(data)
    if not roots:
        raise DelegationError("Delegation archive has no roots")
    root = blocks.get(roots[0])
    if root is None:
        raise DelegationError(f"Delegation archive is missing root block {roots[0]}")
    delegation = Delegation(root, blocks)
    try:
        delegation.data
    except UCANError as e:
        raise DelegationError(f"Root block is not a UCAN: {e}") from e
    return delegation


def import_token(token: str) -> Union[Delegation, Failure]:
    """Import a bare JWT UCAN, returning a Failure when it is unusable."""
    try:
        parsed = ucan_module.parse(token)
    except UCANError as e:
        return Failure(f"Invalid UCAN: {e}")
    if not ucan_module.verify_signature(parsed):
        return Failure(f"UCAN signature is not valid for issuer {parsed.issuer}")
    return Delegation(ucan_module.write(parsed))


def matches(delegation: Delegation, caps: Optional[list[dict]] = None) -> bool:
    """True if any of the delegation's capabilities covers any of caps.

    Empty or missing caps match everything. Abilities honour "*" and "ns/*".
    """
    if not caps:
        return True
    for want in caps:
        for have in delegation.capabilities:
            if want.get("with") and have.get("with") not in (want["with"], "ucan:*"):
                continue
            if _ability_covers(have.get("can", ""), want.get("can", "")):
                return True
    return False


def _ability_covers(have: str, want: str) -> bool:
    if have == "*" or have == want:
        return True
    if have.endswith("/*"):
        return want.startswith(have[:-1])
    return False
