"""
Ed25519 verification for Discord HTTP interactions.

Discord signs timestamp + raw body with the application's key; requests
that fail verification must be answered with 401.
"""

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from app.config import settings


class SignatureError(RuntimeError):
    """Raised when verification prerequisites are not satisfied."""


def _public_key(public_key_hex: str | None = None) -> Ed25519PublicKey:
    key_hex = public_key_hex or settings.DISCORD_PUBLIC_KEY
    if not key_hex:
        raise SignatureError("DISCORD_PUBLIC_KEY is not configured")
    try:
        return Ed25519PublicKey.from_public_bytes(bytes.fromhex(key_hex))
    except ValueError as e:
        raise SignatureError(f"DISCORD_PUBLIC_KEY is not a valid Ed25519 key: {e}") from e


def verify_interaction_signature(
    signature_hex: str | None,
    timestamp: str | None,
    body: bytes,
    public_key_hex: str | None = None,
) -> bool:
    """Return True if the request was signed by Discord."""
    if not signature_hex or not timestamp:
        return False

    key = _public_key(public_key_hex)
    try:
        key.verify(bytes.fromhex(signature_hex), timestamp.encode("utf-8") + body)
    except (InvalidSignature, ValueError):
        return False
    return True
