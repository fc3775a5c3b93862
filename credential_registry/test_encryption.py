"""
Encryption Gateway Tests
========================
"""

import json

import pytest

from credential_registry.encryption import EncryptedRecord, EncryptionGateway
from credential_registry.errors import DecryptionFailed, InvalidKey
from credential_registry.key_manager import (
    KeyManager,
    load_public_key,
    public_key_from_private,
)

# Well-known development key (Hardhat account #0)
DEV_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEV_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
DEV_PUBLIC_KEY = (
    "8318535b54105d4a7aae60c08fc45f9687181b4fdfc625bd1a753fa7397fed75"
    "3547f11ca8696646f2f3acb08e31016afac23e630c5d11f59f61fef57b0d2aa5"
)

# eth-crypto record for DEV_PUBLIC_KEY, fixed ephemeral key and IV
ETH_CRYPTO_BLOB = (
    b'{"iv":"000102030405060708090a0b0c0d0e0f",'
    b'"ephemPublicKey":"04ba5734d8f7091719471e7f7ed6b9df170dc70cc661ca05e688601ad984f068'
    b'b0d67351e5f06073092499336ab0839ef8a521afd334e53807205fa2f08eec74f4",'
    b'"ciphertext":"1c81e410ecb63bcb8ef20858d33bb141014d80e67e653c57f86c356c0738382b",'
    b'"mac":"d26afff77f343a580a8646d79e1d8d62476ff45b27c24957b7c405ff7e2bfd99"}'
)


class TestKeyManager:
    """Test KeyManager functionality"""

    def setup_method(self):
        self.key_manager = KeyManager()

    def test_generate_keypair(self):
        key = self.key_manager.generate_keypair("holder-1")

        assert key.address.startswith("0x")
        assert len(key.public_key) == 128
        assert key.private_key.startswith("0x")
        assert public_key_from_private(key.private_key) == key.public_key
        print(f"✅ Key pair generated with address: {key.address}")

    def test_import_known_key(self):
        key = self.key_manager.import_private_key("dev", DEV_PRIVATE_KEY)

        assert key.address == DEV_ADDRESS
        assert key.private_key == DEV_PRIVATE_KEY
        assert self.key_manager.get_key("dev") is key

    def test_export_public_keys(self):
        self.key_manager.generate_keypair("a")
        self.key_manager.generate_keypair("b")

        exported = self.key_manager.export_public_keys()
        assert sorted(exported) == ["a", "b"]
        assert all("private_key" not in entry for entry in exported.values())

    def test_public_key_encodings(self):
        key = self.key_manager.generate_keypair("holder")
        raw = key.public_key

        uncompressed = load_public_key("04" + raw)
        assert load_public_key("0x" + raw).public_numbers() == uncompressed.public_numbers()

    @pytest.mark.parametrize("bad_key", [
        "",
        "0x1234",
        "zz" * 64,
        "00" * 64,
        12345,
    ])
    def test_invalid_public_key(self, bad_key):
        with pytest.raises(InvalidKey):
            load_public_key(bad_key)

    @pytest.mark.parametrize("bad_key", ["0x", "00" * 32, "ff" * 32, "0xnothex"])
    def test_invalid_private_key(self, bad_key):
        with pytest.raises(InvalidKey):
            self.key_manager.import_private_key("bad", bad_key)


class TestEncryptionGateway:
    """Test ECIES encryption of credential documents"""

    def setup_method(self):
        self.gateway = EncryptionGateway()
        key_manager = KeyManager()
        self.holder = key_manager.generate_keypair("holder")
        self.other = key_manager.generate_keypair("other")

    def test_round_trip(self):
        """decrypt(sk, encrypt(pk, m)) == m"""
        for document in (b"", b"x", b'{"id":"did:x:1"}', bytes(range(256)) * 5):
            record = self.gateway.encrypt(self.holder.public_key, document)
            assert self.gateway.decrypt(self.holder.private_key, record) == document
        print("✅ Encrypt/decrypt round trip")

    def test_fresh_randomness_per_call(self):
        first = self.gateway.encrypt(self.holder.public_key, b"same document")
        second = self.gateway.encrypt(self.holder.public_key, b"same document")

        assert first.ephem_public_key != second.ephem_public_key
        assert first.ciphertext != second.ciphertext
        assert first.serialize() != second.serialize()

    def test_wrong_key_fails(self):
        record = self.gateway.encrypt(self.holder.public_key, b"secret claims")

        with pytest.raises(DecryptionFailed):
            self.gateway.decrypt(self.other.private_key, record)

    def test_tampered_ciphertext_fails(self):
        record = self.gateway.encrypt(self.holder.public_key, b"secret claims")
        flipped = bytes([record.ciphertext[0] ^ 0x01]) + record.ciphertext[1:]
        tampered = EncryptedRecord(
            iv=record.iv,
            ephem_public_key=record.ephem_public_key,
            ciphertext=flipped,
            mac=record.mac
        )

        with pytest.raises(DecryptionFailed):
            self.gateway.decrypt(self.holder.private_key, tampered)

    def test_tampered_mac_fails(self):
        record = self.gateway.encrypt(self.holder.public_key, b"secret claims")
        tampered = EncryptedRecord(
            iv=record.iv,
            ephem_public_key=record.ephem_public_key,
            ciphertext=record.ciphertext,
            mac=bytes(32)
        )

        with pytest.raises(DecryptionFailed):
            self.gateway.decrypt(self.holder.private_key, tampered)

    def test_invalid_public_key(self):
        with pytest.raises(InvalidKey):
            self.gateway.encrypt("not-a-key", b"document")

    def test_invalid_ephemeral_key(self):
        record = self.gateway.encrypt(self.holder.public_key, b"document")
        broken = EncryptedRecord(
            iv=record.iv,
            ephem_public_key=b"\x04" + bytes(64),
            ciphertext=record.ciphertext,
            mac=record.mac
        )

        with pytest.raises(DecryptionFailed):
            self.gateway.decrypt(self.holder.private_key, broken)

    def test_plaintext_must_be_bytes(self):
        with pytest.raises(TypeError):
            self.gateway.encrypt(self.holder.public_key, "text")


class TestEncryptedRecordFormat:
    """Wire format of the serialized record"""

    def setup_method(self):
        self.gateway = EncryptionGateway()
        self.holder = KeyManager().generate_keypair("holder")

    def test_wire_format(self):
        record = self.gateway.encrypt(self.holder.public_key, b"document")
        blob = record.serialize()
        data = json.loads(blob)

        assert list(data) == ["iv", "ephemPublicKey", "ciphertext", "mac"]
        assert b" " not in blob
        assert len(bytes.fromhex(data["iv"])) == 16
        assert len(bytes.fromhex(data["ephemPublicKey"])) == 65
        assert data["ephemPublicKey"].startswith("04")
        assert len(bytes.fromhex(data["mac"])) == 32
        assert all(value == value.lower() for value in data.values())

    def test_deserialize_is_byte_identical(self):
        record = self.gateway.encrypt(self.holder.public_key, b"document")
        blob = record.serialize()

        assert EncryptedRecord.deserialize(blob) == record
        assert EncryptedRecord.deserialize(blob).serialize() == blob

    @pytest.mark.parametrize("blob", [
        b"",
        b"\xff\xfe",
        b"[]",
        b'{"iv":"00"}',
        b'{"iv":"zz","ephemPublicKey":"","ciphertext":"","mac":""}',
    ])
    def test_malformed_record(self, blob):
        with pytest.raises(DecryptionFailed):
            EncryptedRecord.deserialize(blob)

    def test_blob_helpers(self):
        blob = self.gateway.encrypt_to_blob(self.holder.public_key, b'{"id":"did:x:1"}')
        assert self.gateway.decrypt_blob(self.holder.private_key, blob) == b'{"id":"did:x:1"}'

    def test_decrypts_eth_crypto_record(self):
        assert public_key_from_private(DEV_PRIVATE_KEY) == DEV_PUBLIC_KEY

        assert EncryptedRecord.deserialize(ETH_CRYPTO_BLOB).serialize() == ETH_CRYPTO_BLOB
        plaintext = self.gateway.decrypt_blob(DEV_PRIVATE_KEY, ETH_CRYPTO_BLOB)
        assert plaintext == b'{"id":"did:x:1"}'
        print("✅ eth-crypto record decrypted")
