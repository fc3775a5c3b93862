"""
Credential Registry API Tests
"""

import base64

from fastapi.testclient import TestClient

from backend.api import create_app
from credential_registry import (
    CredentialService,
    EncryptedRecord,
    EncryptionGateway,
    KeyManager,
    StoreUnavailable,
)
from credential_registry.config import RegistrySettings
from credential_registry.content_store import InMemoryContentStore

OWNER = "0x90F8bf6A479f320ead074411a4B0e7944Ea8c9C1"
ISSUER = "0xFFcf8FDEE72ac11b5c542428B35EEF5769C409f0"

DOCUMENT = '{"id":"did:x:1"}'


class DownStore(InMemoryContentStore):
    def publish(self, data):
        raise StoreUnavailable("node offline")


def _service(store=None):
    settings = RegistrySettings(
        OWNER_ADDRESS=OWNER,
        STORE_BACKEND="memory",
        PUBLISH_MAX_ATTEMPTS=1
    )
    return CredentialService(settings=settings, store=store)


class TestCredentialAPI:
    """Test the HTTP ledger interface"""

    def setup_method(self):
        self.service = _service()
        self.client = TestClient(create_app(self.service))
        self.client.__enter__()
        self.holder = KeyManager().generate_keypair("holder")

    def teardown_method(self):
        self.client.__exit__(None, None, None)

    def _as(self, caller):
        return {"X-Caller-Address": caller}

    def _setup_type(self):
        self.client.post("/api/issuers", json={"address": ISSUER}, headers=self._as(OWNER))
        response = self.client.post(
            "/api/credential-types", json={"name": "VaccineABC"}, headers=self._as(ISSUER)
        )
        return response.json()["id"]

    def _issue(self, type_id, caller=ISSUER):
        return self.client.post(
            "/api/credentials",
            json={
                "credentialTypeId": type_id,
                "holder": self.holder.address,
                "holderPublicKey": self.holder.public_key,
                "document": DOCUMENT
            },
            headers=self._as(caller)
        )

    def test_add_issuer(self):
        response = self.client.post(
            "/api/issuers", json={"address": ISSUER}, headers=self._as(OWNER)
        )
        assert response.status_code == 200
        assert response.json()["added"] is True

        response = self.client.get(f"/api/issuers/{ISSUER}")
        assert response.json() == {"address": ISSUER, "isIssuer": True}

    def test_add_issuer_forbidden(self):
        response = self.client.post(
            "/api/issuers", json={"address": ISSUER}, headers=self._as(ISSUER)
        )
        assert response.status_code == 403
        assert response.json()["error"] == "PermissionDenied"

    def test_caller_header_required(self):
        response = self.client.post("/api/issuers", json={"address": ISSUER})
        assert response.status_code == 422

    def test_credential_type(self):
        type_id = self._setup_type()

        response = self.client.get(f"/api/credential-types/{type_id}")
        assert response.json() == {"id": type_id, "issuer": ISSUER, "name": "VaccineABC"}

        assert self.client.get("/api/credential-types/9").status_code == 404

    def test_issue_and_download_record(self):
        """Issue over HTTP, then decrypt the downloaded record locally"""
        type_id = self._setup_type()

        response = self._issue(type_id)
        assert response.status_code == 200
        body = response.json()
        cred_id = body["id"]

        credential = self.client.get(f"/api/credentials/{cred_id}").json()
        assert credential == {
            "id": cred_id,
            "credentialTypeId": type_id,
            "holder": self.holder.address,
            "contentHash": body["contentHash"]
        }

        record = self.client.get(f"/api/credentials/{cred_id}/record").json()
        decrypted = EncryptionGateway().decrypt(
            self.holder.private_key, EncryptedRecord.from_dict(record)
        )
        assert decrypted.decode("utf-8") == DOCUMENT

    def test_issue_binary_document(self):
        """Non-text documents travel as base64"""
        type_id = self._setup_type()
        document = bytes(range(256))

        response = self.client.post(
            "/api/credentials",
            json={
                "credentialTypeId": type_id,
                "holder": self.holder.address,
                "holderPublicKey": self.holder.public_key,
                "documentBase64": base64.b64encode(document).decode("ascii")
            },
            headers=self._as(ISSUER)
        )
        assert response.status_code == 200

        cred_id = response.json()["id"]
        record = self.client.get(f"/api/credentials/{cred_id}/record").json()
        decrypted = EncryptionGateway().decrypt(
            self.holder.private_key, EncryptedRecord.from_dict(record)
        )
        assert decrypted == document
        print("✅ Binary document issued over HTTP")

    def test_document_fields_exclusive(self):
        type_id = self._setup_type()
        base = {
            "credentialTypeId": type_id,
            "holder": self.holder.address,
            "holderPublicKey": self.holder.public_key
        }
        bodies = [
            base,
            {**base, "document": DOCUMENT, "documentBase64": "AAE="},
            {**base, "documentBase64": "not base64!"},
        ]
        for body in bodies:
            response = self.client.post("/api/credentials", json=body, headers=self._as(ISSUER))
            assert response.status_code == 422
        assert self.service.registry.get_credential_count() == 0

    def test_holder_lookups(self):
        type_id = self._setup_type()
        cred_id = self._issue(type_id).json()["id"]
        holder = self.holder.address

        count = self.client.get(f"/api/holders/{holder}/credentials/count").json()
        assert count == {"holder": holder, "count": 1}

        response = self.client.get(f"/api/holders/{holder}/credentials/0")
        assert response.json()["id"] == cred_id

        response = self.client.get(f"/api/holders/{holder}/credentials/1")
        assert response.status_code == 404
        assert response.json()["error"] == "IndexOutOfRange"

    def test_issue_by_non_owner_of_type(self):
        type_id = self._setup_type()
        self.client.post("/api/issuers", json={"address": OWNER}, headers=self._as(OWNER))

        response = self._issue(type_id, caller=OWNER)
        assert response.status_code == 403
        assert response.json()["stage"] == "record"

    def test_invalid_public_key(self):
        type_id = self._setup_type()
        response = self.client.post(
            "/api/credentials",
            json={
                "credentialTypeId": type_id,
                "holder": self.holder.address,
                "holderPublicKey": "0x1234",
                "document": DOCUMENT
            },
            headers=self._as(ISSUER)
        )
        assert response.status_code == 400
        assert response.json()["stage"] == "encrypt"

    def test_info(self):
        response = self.client.get("/api/info")
        assert response.status_code == 200
        assert response.json()["owner"] == OWNER


class TestStoreOutage:
    def test_store_unavailable_maps_to_503(self):
        service = _service(store=DownStore())
        with TestClient(create_app(service)) as client:
            client.post(
                "/api/issuers", json={"address": ISSUER},
                headers={"X-Caller-Address": OWNER}
            )
            type_id = client.post(
                "/api/credential-types", json={"name": "VaccineABC"},
                headers={"X-Caller-Address": ISSUER}
            ).json()["id"]
            holder = KeyManager().generate_keypair("holder")

            response = client.post(
                "/api/credentials",
                json={
                    "credentialTypeId": type_id,
                    "holder": holder.address,
                    "holderPublicKey": holder.public_key,
                    "document": DOCUMENT
                },
                headers={"X-Caller-Address": ISSUER}
            )

        assert response.status_code == 503
        assert response.json() == {
            "detail": "node offline", "error": "StoreUnavailable", "stage": "publish"
        }
        assert service.registry.get_credential_count() == 0
