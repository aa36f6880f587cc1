# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/ucan.py

"""
UCAN 0.9 tokens in their JWT form.

A token is signed by its issuer and grants the listed capabilities to the
audience:

    header  {"alg": "EdDSA", "typ": "JWT", "ucv": "0.9.1"}
    payload {"iss", "aud", "att", "exp", "nbf"?, "nnc"?, "fct"?, "prf"}

Blocks carry the UTF-8 JWT bytes under a CIDv1 with the raw codec.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

import jwt
from multiformats import CID, multihash

from w3_client.principal import PrincipalError, SigningPrincipal, Verifier


VERSION = "0.9.1"
ALGORITHM = "EdDSA"
DEFAULT_LIFETIME = 30


class UCANError(ValueError):
    """Raised when a token is malformed."""
    pass


@dataclass(frozen=True)
class Block:
    """An IPLD block: the bytes and the CID that addresses them."""
    cid: CID
    bytes: bytes


@dataclass
class UCAN:
    """A parsed UCAN token."""
    issuer: str
    audience: str
    capabilities: list[dict]
    expiration: Optional[int]
    jwt: str
    not_before: Optional[int] = None
    nonce: Optional[str] = None
    facts: list[dict] = field(default_factory=list)
    proofs: list[str] = field(default_factory=list)
    version: str = VERSION

    @property
    def signature(self) -> bytes:
        return jwt.utils.base64url_decode(self.jwt.rsplit(".", 1)[1])

    def to_dict(self) -> dict:
        return {
            "iss": self.issuer,
            "aud": self.audience,
            "att": self.capabilities,
            "exp": self.expiration,
            "nbf": self.not_before,
            "nnc": self.nonce,
            "fct": self.facts,
            "prf": self.proofs,
            "v": self.version,
        }


def _now() -> int:
    return int(time.time())


def issue(
    issuer: SigningPrincipal,
    audience: str,
    capabilities: list[dict],
    lifetime_in_seconds: int = DEFAULT_LIFETIME,
    expiration: Optional[int] = None,
    not_before: Optional[int] = None,
    nonce: Optional[str] = None,
    facts: Optional[list[dict]] = None,
    proofs: Optional[list] = None,
) -> UCAN:
    """
    Issue a signed UCAN.

    Args:
        issuer: Principal signing the token
        audience: DID (or principal) receiving the capabilities
        capabilities: List of {"with": resource, "can": ability, "nb"?: caveats}
        lifetime_in_seconds: Used when expiration is not given
        expiration: Absolute expiry in unix seconds; float("inf") for never
        not_before: Absolute unix seconds before which the token is invalid
        nonce: Optional nonce
        facts: Optional list of fact dicts
        proofs: CIDs (or CID strings) of the proofs this token relies on

    Returns:
        UCAN with its signed JWT
    """
    if not capabilities:
        raise UCANError("A UCAN must carry at least one capability")
    for cap in capabilities:
        if "with" not in cap or "can" not in cap:
            raise UCANError(f"Capability must have 'with' and 'can': {cap}")

    audience_did = audience.did() if isinstance(audience, Verifier) else audience

    if expiration is None:
        exp = _now() + lifetime_in_seconds
    elif expiration == float("inf"):
        exp = None
    else:
        exp = int(expiration)

    payload = {
        "iss": issuer.did(),
        "aud": audience_did,
        "att": [dict(c) for c in capabilities],
        "exp": exp,
        "prf": [str(p) for p in (proofs or [])],
    }
    if not_before is not None:
        payload["nbf"] = int(not_before)
    if nonce is not None:
        payload["nnc"] = nonce
    if facts:
        payload["fct"] = list(facts)

    token = jwt.encode(
        payload,
        issuer.private_key,
        algorithm=ALGORITHM,
        headers={"ucv": VERSION},
    )
    return parse(token)


def format(ucan: UCAN) -> str:
    return ucan.jwt


def parse(token: str) -> UCAN:
    """Parse a JWT UCAN without checking its signature.

    Raises:
        UCANError: not a JWT, or required fields are missing
    """
    if isinstance(token, (bytes, bytearray)):
        try:
            token = bytes(token).decode("utf-8")
        except UnicodeDecodeError as e:
            raise UCANError(f"UCAN is not valid UTF-8: {e}") from e
    if not isinstance(token, str) or token.count(".") != 2:
        raise UCANError("Not a JWT-encoded UCAN")

    try:
        header = jwt.get_unverified_header(token)
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.exceptions.PyJWTError as e:
        raise UCANError(f"Malformed UCAN: {e}") from e

    if header.get("alg") != ALGORITHM:
        raise UCANError(f"Unsupported UCAN algorithm: {header.get('alg')}")

    for key in ("iss", "aud", "att"):
        if key not in payload:
            raise UCANError(f"UCAN is missing '{key}'")
    if not str(payload["iss"]).startswith("did:"):
        raise UCANError(f"UCAN issuer is not a DID: {payload['iss']}")
    if not str(payload["aud"]).startswith("did:"):
        raise UCANError(f"UCAN audience is not a DID: {payload['aud']}")
    if not isinstance(payload["att"], list):
        raise UCANError("UCAN 'att' must be a list")

    return UCAN(
        issuer=payload["iss"],
        audience=payload["aud"],
        capabilities=payload["att"],
        expiration=payload.get("exp"),
        not_before=payload.get("nbf"),
        nonce=payload.get("nnc"),
        facts=payload.get("fct") or [],
        proofs=payload.get("prf") or [],
        version=header.get("ucv", VERSION),
        jwt=token,
    )


def verify_signature(ucan: UCAN) -> bool:
    """True if the token was signed by the key named in its issuer DID."""
    try:
        verifier = Verifier.parse(ucan.issuer)
    except PrincipalError:
        return False
    try:
        jwt.PyJWS().decode(ucan.jwt, verifier.public_key, algorithms=[ALGORITHM])
    except jwt.exceptions.InvalidSignatureError:
        return False
    except jwt.exceptions.DecodeError:
        return False
    return True


def is_expired(ucan: UCAN, now: Optional[int] = None) -> bool:
    if ucan.expiration is None:
        return False
    return ucan.expiration <= (_now() if now is None else now)


def is_too_early(ucan: UCAN, now: Optional[int] = None) -> bool:
    if ucan.not_before is None:
        return False
    return ucan.not_before > (_now() if now is None else now)


def write(ucan: UCAN) -> Block:
    """Encode the token as a raw block."""
    data = ucan.jwt.encode("utf-8")
    digest = multihash.digest(data, "sha2-256")
    return Block(cid=CID("base32", 1, "raw", digest), bytes=data)


def link(ucan: UCAN) -> CID:
    return write(ucan).cid
