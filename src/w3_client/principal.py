# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/principal.py

"""
Ed25519 principals identified by did:key DIDs.

Key material is serialized the same way other UCAN tooling does it:

    varint(0x1300) || private key (32) || varint(0xed) || public key (32)

and formatted as multibase base64pad ("M..." strings) for settings files.
"""

import base64
import binascii

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from multiformats import multibase, multicodec, varint


ED25519_PRIV_CODE = 0x1300
ED25519_PUB_CODE = 0xED
KEY_SIZE = 32

_PRIV_TAG = varint.encode(ED25519_PRIV_CODE)
_PUB_TAG = varint.encode(ED25519_PUB_CODE)
ENCODED_SIZE = len(_PRIV_TAG) + KEY_SIZE + len(_PUB_TAG) + KEY_SIZE

DID_KEY_PREFIX = "did:key:"


class PrincipalError(ValueError):
    """Raised when key material or a DID cannot be decoded."""
    pass


def _raw_public(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


class Verifier:
    """A principal that can only verify signatures (the public half)."""

    def __init__(self, public_key: Ed25519PublicKey):
        self.public_key = public_key

    @property
    def public_bytes(self) -> bytes:
        return _raw_public(self.public_key)

    def did(self) -> str:
        tagged = multicodec.wrap("ed25519-pub", self.public_bytes)
        return DID_KEY_PREFIX + multibase.encode(tagged, "base58btc")

    def verify(self, payload: bytes, signature: bytes) -> bool:
        try:
            self.public_key.verify(signature, payload)
            return True
        except InvalidSignature:
            return False

    @classmethod
    def parse(cls, did: str) -> "Verifier":
        """Build a verifier from a did:key string."""
        if not isinstance(did, str) or not did.startswith(DID_KEY_PREFIX):
            raise PrincipalError(f"Not a did:key DID: {did!r}")
        try:
            codec, raw = multicodec.unwrap(multibase.decode(did[len(DID_KEY_PREFIX):]))
        except (KeyError, ValueError) as e:
            raise PrincipalError(f"Invalid did:key {did!r}: {e}") from e
        if codec.name != "ed25519-pub" or len(raw) != KEY_SIZE:
            raise PrincipalError(f"Unsupported key type in {did!r}: {codec.name}")
        return cls(Ed25519PublicKey.from_public_bytes(raw))

    def __eq__(self, other) -> bool:
        return isinstance(other, Verifier) and self.did() == other.did()

    def __hash__(self) -> int:
        return hash(self.did())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.did()})"


class SigningPrincipal(Verifier):
    """Ed25519 keypair able to sign UCANs."""

    def __init__(self, private_key: Ed25519PrivateKey):
        super().__init__(private_key.public_key())
        self.private_key = private_key

    @property
    def verifier(self) -> Verifier:
        return Verifier(self.public_key)

    def sign(self, payload: bytes) -> bytes:
        return self.private_key.sign(payload)

    @property
    def bytes(self) -> bytes:
        return self.encode()

    def encode(self) -> bytes:
        private = self.private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return _PRIV_TAG + private + _PUB_TAG + self.public_bytes


def generate() -> SigningPrincipal:
    """Generate a fresh Ed25519 signing principal."""
    return SigningPrincipal(Ed25519PrivateKey.generate())


def encode(principal: SigningPrincipal) -> bytes:
    return principal.encode()


def decode(data: bytes) -> SigningPrincipal:
    """Decode the tagged private+public key bytes produced by encode().

    Raises:
        PrincipalError: wrong length, wrong tags, or mismatched public key
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise PrincipalError(f"Expected bytes, got {type(data).__name__}")
    data = bytes(data)
    if len(data) != ENCODED_SIZE:
        raise PrincipalError(
            f"Expected {ENCODED_SIZE} bytes of key material, got {len(data)}"
        )

    offset = len(_PRIV_TAG)
    if data[:offset] != _PRIV_TAG:
        raise PrincipalError("Key material is not tagged as an ed25519 private key")
    private = data[offset:offset + KEY_SIZE]
    offset += KEY_SIZE
    if data[offset:offset + len(_PUB_TAG)] != _PUB_TAG:
        raise PrincipalError("Key material is not tagged as an ed25519 public key")
    public = data[offset + len(_PUB_TAG):]

    principal = SigningPrincipal(Ed25519PrivateKey.from_private_bytes(private))
    if principal.public_bytes != public:
        raise PrincipalError("Public key does not match private key")
    return principal


def format(principal: SigningPrincipal) -> str:
    """Multibase base64pad string of the encoded key."""
    return multibase.encode(principal.encode(), "base64pad")


def parse(text: str) -> SigningPrincipal:
    """Inverse of format().

    Raises:
        PrincipalError: not a multibase string or not valid key material
    """
    if not isinstance(text, str):
        raise PrincipalError(f"Expected str, got {type(text).__name__}")
    try:
        data = multibase.decode(text.strip())
    except (KeyError, ValueError) as e:
        raise PrincipalError(f"Not a multibase-encoded key: {e}") from e
    return decode(data)


def to_principal(secret) -> SigningPrincipal | None:
    """Convert some stored secret into a principal.

    Settings written by older and newer tools store secrets as raw bytes, as
    multibase strings, or as plain base64. Tries each in turn and returns
    None when nothing matches.
    """
    if isinstance(secret, SigningPrincipal):
        return secret
    try:
        return decode(secret)
    except PrincipalError:
        pass
    try:
        return parse(secret)
    except PrincipalError:
        pass
    try:
        return decode(base64.b64decode(secret, validate=True))
    except (PrincipalError, binascii.Error, TypeError, ValueError):
        return None
