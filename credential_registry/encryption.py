"""
Encryption Gateway
==================

ECIES over secp256k1 for credential documents, wire compatible with
eth-crypto's ``encryptWithPublicKey`` / ``decryptWithPrivateKey``:

1. Fresh ephemeral key pair, ECDH with the recipient public key
2. SHA-512 of the shared x coordinate -> 32-byte AES key + 32-byte MAC key
3. AES-256-CBC with a random IV and PKCS7 padding
4. HMAC-SHA256 over iv || ephemeral public key || ciphertext

The serialized EncryptedRecord is what gets content-addressed, so its
encoding is fixed: compact JSON, keys in the order
``iv, ephemPublicKey, ciphertext, mac``, lower-case hex values.
"""

import hashlib
import hmac
import json
import os
from dataclasses import dataclass
from typing import Any, Dict

from cryptography.hazmat.primitives import padding, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import DecryptionFailed, InvalidKey
from .key_manager import CURVE, load_private_key, load_public_key

IV_SIZE = 16
MAC_SIZE = 32
EPHEMERAL_KEY_SIZE = 65


@dataclass(frozen=True)
class EncryptedRecord:
    """Ciphertext package produced by the encryption gateway"""
    iv: bytes
    ephem_public_key: bytes  # 65-byte uncompressed SEC1 point
    ciphertext: bytes
    mac: bytes

    def to_dict(self) -> Dict[str, str]:
        return {
            "iv": self.iv.hex(),
            "ephemPublicKey": self.ephem_public_key.hex(),
            "ciphertext": self.ciphertext.hex(),
            "mac": self.mac.hex()
        }

    def serialize(self) -> bytes:
        """Canonical wire bytes (the content-addressed blob)"""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedRecord":
        try:
            return cls(
                iv=bytes.fromhex(data["iv"]),
                ephem_public_key=bytes.fromhex(data["ephemPublicKey"]),
                ciphertext=bytes.fromhex(data["ciphertext"]),
                mac=bytes.fromhex(data["mac"])
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecryptionFailed(f"Malformed encrypted record: {e}") from None

    @classmethod
    def deserialize(cls, blob: bytes) -> "EncryptedRecord":
        try:
            data = json.loads(blob.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise DecryptionFailed("Encrypted record is not valid JSON") from None
        if not isinstance(data, dict):
            raise DecryptionFailed("Encrypted record must be a JSON object")
        return cls.from_dict(data)


def _derive_keys(private_key: ec.EllipticCurvePrivateKey,
                 public_key: ec.EllipticCurvePublicKey):
    shared = private_key.exchange(ec.ECDH(), public_key)
    digest = hashlib.sha512(shared).digest()
    return digest[:32], digest[32:]


def _mac(mac_key: bytes, iv: bytes, ephem_public_key: bytes, ciphertext: bytes) -> bytes:
    return hmac.new(mac_key, iv + ephem_public_key + ciphertext, hashlib.sha256).digest()


class EncryptionGateway:
    """
    Asymmetric encryption of credential documents

    Stateless; safe to share between threads.
    """

    def encrypt(self, public_key: str, plaintext: bytes) -> EncryptedRecord:
        """
        Encrypt a document for the holder of ``public_key``

        Args:
            public_key: Recipient secp256k1 public key (hex)
            plaintext: Document bytes

        Returns:
            EncryptedRecord, different on every call

        Raises:
            InvalidKey: if the public key is malformed
        """
        if not isinstance(plaintext, (bytes, bytearray)):
            raise TypeError("plaintext must be bytes")

        recipient = load_public_key(public_key)
        ephemeral = ec.generate_private_key(CURVE)
        ephem_public_key = ephemeral.public_key().public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint
        )
        enc_key, mac_key = _derive_keys(ephemeral, recipient)

        iv = os.urandom(IV_SIZE)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(bytes(plaintext)) + padder.finalize()
        encryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return EncryptedRecord(
            iv=iv,
            ephem_public_key=ephem_public_key,
            ciphertext=ciphertext,
            mac=_mac(mac_key, iv, ephem_public_key, ciphertext)
        )

    def decrypt(self, private_key: str, record: EncryptedRecord) -> bytes:
        """
        Decrypt a record with the holder's private key

        The MAC is checked before any decryption happens.

        Raises:
            InvalidKey: if the private key is malformed
            DecryptionFailed: if the record was not made for this key or
                fails its integrity check
        """
        holder_key = load_private_key(private_key)

        if len(record.iv) != IV_SIZE or len(record.mac) != MAC_SIZE:
            raise DecryptionFailed("Encrypted record has invalid IV or MAC length")
        try:
            ephemeral = load_public_key(record.ephem_public_key)
        except InvalidKey as e:
            raise DecryptionFailed(f"Invalid ephemeral public key: {e.message}") from None

        enc_key, mac_key = _derive_keys(holder_key, ephemeral)
        expected = _mac(mac_key, record.iv, record.ephem_public_key, record.ciphertext)
        if not hmac.compare_digest(expected, record.mac):
            raise DecryptionFailed("MAC mismatch: wrong key or tampered record")

        try:
            decryptor = Cipher(algorithms.AES(enc_key), modes.CBC(record.iv)).decryptor()
            padded = decryptor.update(record.ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise DecryptionFailed(f"Invalid ciphertext: {e}") from None

    # ==================== BLOB HELPERS ====================

    def encrypt_to_blob(self, public_key: str, plaintext: bytes) -> bytes:
        """Encrypt and serialize in one step"""
        return self.encrypt(public_key, plaintext).serialize()

    def decrypt_blob(self, private_key: str, blob: bytes) -> bytes:
        """Deserialize and decrypt in one step"""
        return self.decrypt(private_key, EncryptedRecord.deserialize(blob))
