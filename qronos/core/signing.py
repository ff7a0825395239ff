from __future__ import annotations
from typing import Optional
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature, encode_dss_signature

from ..errors import SigningUnavailable
from .config import get_settings

CURVE = ec.SECP256K1()
_SCALAR_BYTES = 32


def attendance_message(event_id: int, timestamp: int) -> str:
    # verifier rebuilds exactly this string; any other framing breaks verification
    return f"{int(event_id)}-{int(timestamp)}"


def generate_private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(CURVE)


def private_key_to_pem(key: ec.EllipticCurvePrivateKey) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


def load_private_key(pem: str) -> ec.EllipticCurvePrivateKey:
    key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    if not isinstance(key, ec.EllipticCurvePrivateKey) or key.curve.name != CURVE.name:
        raise ValueError("professor key must be a secp256k1 EC key")
    return key


def identity_from_public_key(pub: ec.EllipticCurvePublicKey) -> str:
    raw = pub.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint,
    )
    return "0x" + raw.hex()


def normalize_identity(identity: str) -> str:
    ident = identity.strip().lower()
    return ident if ident.startswith("0x") else "0x" + ident


def public_key_from_identity(identity: str) -> ec.EllipticCurvePublicKey:
    raw = bytes.fromhex(normalize_identity(identity)[2:])
    return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, raw)


def _decode_signature(signature: str) -> bytes:
    sig = signature.strip()
    if sig.lower().startswith("0x"):
        sig = sig[2:]
    raw = bytes.fromhex(sig)
    if len(raw) != 2 * _SCALAR_BYTES:
        raise ValueError("signature must be 64 bytes (r || s)")
    r = int.from_bytes(raw[:_SCALAR_BYTES], "big")
    s = int.from_bytes(raw[_SCALAR_BYTES:], "big")
    return encode_dss_signature(r, s)


def recover_valid(identity: str, event_id: int, timestamp: int, signature: str) -> bool:
    """True when `signature` over "{event_id}-{timestamp}" was made by `identity`'s key."""
    try:
        pub = public_key_from_identity(identity)
        der = _decode_signature(signature)
    except (ValueError, TypeError):
        return False
    try:
        pub.verify(der, attendance_message(event_id, timestamp).encode("utf-8"), ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    return True


class SignatureIssuer:
    """Professor side: attests that `timestamp` is current for `event_id`."""

    def __init__(self, private_key: Optional[ec.EllipticCurvePrivateKey] = None):
        self._key = private_key

    @classmethod
    def from_settings(cls) -> "SignatureIssuer":
        pem = get_settings().professor_private_key_pem
        return cls(load_private_key(pem) if pem else None)

    @property
    def available(self) -> bool:
        return self._key is not None

    @property
    def identity(self) -> Optional[str]:
        if self._key is None:
            return None
        return identity_from_public_key(self._key.public_key())

    def sign(self, event_id: int, timestamp: int) -> str:
        if self._key is None:
            raise SigningUnavailable("no signing key loaded for this session")
        message = attendance_message(event_id, timestamp).encode("utf-8")
        der = self._key.sign(message, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return "0x" + r.to_bytes(_SCALAR_BYTES, "big").hex() + s.to_bytes(_SCALAR_BYTES, "big").hex()
