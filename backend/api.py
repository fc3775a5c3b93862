"""
Credential Registry HTTP API

Exposes the ledger transaction interface over HTTP. The acting address
of every mutating call comes from the ``X-Caller-Address`` header, set
by the surrounding environment (gateway, wallet proxy).

Private keys never cross this boundary: holders download the encrypted
record and decrypt it locally.
"""

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, model_validator
import uvicorn

from credential_registry import (
    ContentIntegrityError,
    CredentialRegistryError,
    CredentialService,
    DecryptionFailed,
    IndexOutOfRange,
    InvalidKey,
    NotFound,
    PermissionDenied,
    StoreError,
    StoreUnavailable,
)
from credential_registry.config import settings

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Most specific classes first
ERROR_STATUS = [
    (PermissionDenied, 403),
    (NotFound, 404),
    (IndexOutOfRange, 404),
    (InvalidKey, 400),
    (DecryptionFailed, 422),
    (ContentIntegrityError, 502),
    (StoreUnavailable, 503),
    (StoreError, 502),
]


# ==================== REQUEST BODIES ====================

class AddIssuerRequest(BaseModel):
    address: str


class AddCredentialTypeRequest(BaseModel):
    name: str


class IssueCredentialRequest(BaseModel):
    credentialTypeId: int
    holder: str
    holderPublicKey: str
    document: Optional[str] = None  # UTF-8 credential document, usually JSON text
    documentBase64: Optional[str] = None  # Arbitrary bytes, standard base64

    @model_validator(mode="after")
    def check_document(self):
        if (self.document is None) == (self.documentBase64 is None):
            raise ValueError("Exactly one of document or documentBase64 is required")
        if self.documentBase64 is not None:
            try:
                base64.b64decode(self.documentBase64, validate=True)
            except binascii.Error:
                raise ValueError("documentBase64 is not valid base64") from None
        return self

    def document_bytes(self) -> bytes:
        if self.documentBase64 is not None:
            return base64.b64decode(self.documentBase64, validate=True)
        return self.document.encode("utf-8")


def get_service(request: Request) -> CredentialService:
    return request.app.state.service


def create_app(service: Optional[CredentialService] = None) -> FastAPI:
    """
    Build the API application

    Args:
        service: Pre-built service (defaults to one built from settings
            when the app starts)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Credential Registry API...")
        app.state.service = service or CredentialService()
        logger.info("Registry owner: %s", app.state.service.owner)
        yield
        logger.info("Shutting down...")
        app.state.service.close()

    app = FastAPI(title="Credential Registry API", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CredentialRegistryError)
    async def registry_error_handler(request: Request, exc: CredentialRegistryError):
        status_code = 500
        for error_class, code in ERROR_STATUS:
            if isinstance(exc, error_class):
                status_code = code
                break
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": exc.message,
                "error": type(exc).__name__,
                "stage": exc.stage
            }
        )

    # ==================== ISSUERS ====================

    @app.post("/api/issuers")
    async def add_issuer(
        body: AddIssuerRequest,
        caller: str = Header(..., alias="X-Caller-Address"),
        service: CredentialService = Depends(get_service)
    ):
        """Grant the issuer role (owner only)"""
        added = service.add_issuer(caller, body.address)
        return {"address": body.address, "isIssuer": True, "added": added}

    @app.get("/api/issuers/{address}")
    async def get_issuer(address: str, service: CredentialService = Depends(get_service)):
        return {"address": address, "isIssuer": service.is_issuer(address)}

    # ==================== CREDENTIAL TYPES ====================

    @app.post("/api/credential-types")
    async def add_credential_type(
        body: AddCredentialTypeRequest,
        caller: str = Header(..., alias="X-Caller-Address"),
        service: CredentialService = Depends(get_service)
    ):
        """Define a credential type owned by the calling issuer"""
        type_id = service.add_credential_type(caller, body.name)
        return {"id": type_id}

    @app.get("/api/credential-types/{credential_type_id}")
    async def get_credential_type(
        credential_type_id: int,
        service: CredentialService = Depends(get_service)
    ):
        return service.get_credential_type(credential_type_id).to_dict()

    # ==================== CREDENTIALS ====================

    @app.post("/api/credentials")
    def issue_credential(
        body: IssueCredentialRequest,
        caller: str = Header(..., alias="X-Caller-Address"),
        service: CredentialService = Depends(get_service)
    ):
        """
        Encrypt a credential document for the holder, publish it and
        record it on the ledger

        Runs in the threadpool since publishing blocks on the store.
        """
        result = service.issue(
            caller,
            body.credentialTypeId,
            body.holder,
            body.holderPublicKey,
            body.document_bytes()
        )
        return {"id": result.credential_id, "contentHash": result.content_hash}

    @app.get("/api/credentials/{credential_id}")
    async def get_credential(credential_id: int, service: CredentialService = Depends(get_service)):
        return service.get_credential(credential_id).to_dict()

    @app.get("/api/credentials/{credential_id}/record")
    def get_credential_record(credential_id: int, service: CredentialService = Depends(get_service)):
        """Encrypted record of a credential, for local decryption by the holder"""
        return service.fetch_record(credential_id).to_dict()

    @app.get("/api/holders/{holder}/credentials/count")
    async def get_holder_credential_count(holder: str, service: CredentialService = Depends(get_service)):
        return {"holder": holder, "count": service.get_credentials_by_holder_count(holder)}

    @app.get("/api/holders/{holder}/credentials/{index}")
    async def get_holder_credential(
        holder: str,
        index: int,
        service: CredentialService = Depends(get_service)
    ):
        return service.get_credential_by_holder(holder, index).to_dict()

    @app.get("/api/info")
    async def get_info(service: CredentialService = Depends(get_service)):
        """Get registry information"""
        return {
            "owner": service.owner,
            "statistics": service.get_statistics()
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("backend.api:app", host="0.0.0.0", port=8000)
