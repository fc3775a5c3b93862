"""
Key Manager - secp256k1 keys for credential holders and issuers

Supports:
- Ethereum-compatible key pairs (address + public key + private key)
- Parsing hex encoded public/private keys for the encryption gateway
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

# Cryptography imports
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

# Ethereum compatibility
from eth_account import Account

from .errors import InvalidKey

CURVE = ec.SECP256K1()

# Curve order n of secp256k1
_CURVE_ORDER = int(
    "FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16
)


@dataclass
class KeyPair:
    """Represents a secp256k1 key pair"""
    key_id: str
    address: str  # Ethereum address derived from the public key
    public_key: str  # Hex, 64-byte raw point (no 04 prefix)
    private_key: Optional[str] = None  # Only stored locally, never shared
    created_at: str = ""

    def __post_init__(self):
        if not self.created_at:
            self.created_at = datetime.now(timezone.utc).isoformat()


# ==================== KEY PARSING ====================

def _hex_to_bytes(value: str, what: str) -> bytes:
    if isinstance(value, bytes):
        return value
    if not isinstance(value, str):
        raise InvalidKey(f"{what} must be a hex string")
    if value.startswith(("0x", "0X")):
        value = value[2:]
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise InvalidKey(f"{what} is not valid hex") from None


def load_public_key(public_key) -> ec.EllipticCurvePublicKey:
    """
    Parse a secp256k1 public key

    Accepts hex of a 64-byte raw point, a 65-byte uncompressed point or a
    33-byte compressed point (with or without 0x prefix).

    Raises:
        InvalidKey: if the key is malformed or not on the curve
    """
    raw = _hex_to_bytes(public_key, "Public key")
    if len(raw) == 64:
        raw = b"\x04" + raw
    if len(raw) not in (33, 65):
        raise InvalidKey(f"Public key has invalid length: {len(raw)} bytes")
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, raw)
    except ValueError:
        raise InvalidKey("Public key is not a valid secp256k1 point") from None


def load_private_key(private_key) -> ec.EllipticCurvePrivateKey:
    """
    Parse a secp256k1 private key given as 32 bytes of hex

    Raises:
        InvalidKey: if the key is malformed or out of range
    """
    raw = _hex_to_bytes(private_key, "Private key")
    if len(raw) != 32:
        raise InvalidKey(f"Private key has invalid length: {len(raw)} bytes")
    secret = int.from_bytes(raw, "big")
    if not 0 < secret < _CURVE_ORDER:
        raise InvalidKey("Private key is out of range")
    return ec.derive_private_key(secret, CURVE)


def encode_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Hex of the 64-byte raw point (eth-crypto public key format)"""
    point = public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint
    )
    return point[1:].hex()


def public_key_from_private(private_key: str) -> str:
    """Derive the hex public key belonging to a private key"""
    return encode_public_key(load_private_key(private_key).public_key())


class KeyManager:
    """
    Manages secp256k1 key pairs

    Features:
    - Generate Ethereum-compatible key pairs
    - Import existing private keys
    - Export public keys
    """

    def __init__(self):
        self._keys: Dict[str, KeyPair] = {}

    # ==================== KEY GENERATION ====================

    def generate_keypair(self, key_id: str) -> KeyPair:
        """
        Generate a new key pair

        Args:
            key_id: Local name for the key

        Returns:
            KeyPair with address, public and private key
        """
        account = Account.create()
        return self.import_private_key(key_id, "0x" + bytes(account.key).hex())

    def import_private_key(self, key_id: str, private_key: str) -> KeyPair:
        """
        Create a KeyPair from an existing Ethereum private key

        Args:
            key_id: Local name for the key
            private_key: Private key (hex string, 0x prefix optional)

        Returns:
            KeyPair

        Raises:
            InvalidKey: if the private key is malformed
        """
        raw = _hex_to_bytes(private_key, "Private key")
        public_key = public_key_from_private(raw.hex())
        account = Account.from_key(raw)

        keypair = KeyPair(
            key_id=key_id,
            address=account.address,
            public_key=public_key,
            private_key="0x" + raw.hex()
        )

        self._keys[key_id] = keypair
        return keypair

    # ==================== KEY MANAGEMENT ====================

    def get_key(self, key_id: str) -> Optional[KeyPair]:
        """Get key by ID"""
        return self._keys.get(key_id)

    def export_public_keys(self) -> Dict[str, Dict]:
        """Export all public keys (no private keys)"""
        result = {}
        for key_id, keypair in self._keys.items():
            result[key_id] = {
                "key_id": keypair.key_id,
                "address": keypair.address,
                "public_key": keypair.public_key,
                "created_at": keypair.created_at
            }
        return result
