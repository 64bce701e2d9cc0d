"""SSH-signature request authentication for BerryMX."""

from .signing import (
    KEY_ID_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    InMemorySigner,
    SshKeygenSigner,
    SigningError,
    build_signed_message,
    sign_request,
)
from .verifier import (
    AuthResult,
    InMemorySignatureVerifier,
    RequestVerifier,
    SignatureVerifier,
    SshKeygenVerifier,
)

__all__ = [
    "KEY_ID_HEADER",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "AuthResult",
    "InMemorySignatureVerifier",
    "InMemorySigner",
    "RequestVerifier",
    "SignatureVerifier",
    "SigningError",
    "SshKeygenSigner",
    "SshKeygenVerifier",
    "build_signed_message",
    "sign_request",
]
