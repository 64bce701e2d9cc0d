"""Canonical request messages and client-side request signing.

The admin client and the server must build byte-identical messages::

    METHOD\\n<decoded path>\\n<timestamp>\\n<hex sha256(body)>\\n

The client signs that message with ``ssh-keygen -Y sign`` and sends the
result in the ``X-SSH-*`` headers.
"""

import hashlib
import hmac
import base64
import logging
import subprocess
import time
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)

KEY_ID_HEADER = "X-SSH-Key-Id"
SIGNATURE_HEADER = "X-SSH-Signature"
TIMESTAMP_HEADER = "X-SSH-Timestamp"

Body = Union[bytes, str, None]


def _body_bytes(body: Body) -> bytes:
    if body is None:
        return b""
    if isinstance(body, str):
        return body.encode("utf-8")
    return bytes(body)


def body_digest(body: Body) -> str:
    return hashlib.sha256(_body_bytes(body)).hexdigest()


def build_signed_message(method: str, path: str, timestamp: Union[str, int], body: Body = b"") -> str:
    """构造待签名的规范消息"""
    return f"{method.upper()}\n{path}\n{timestamp}\n{body_digest(body)}\n"


class SigningError(Exception):
    """客户端签名失败"""


class Signer:
    """Produces raw signature bytes for a canonical message."""

    def sign(self, message: bytes) -> bytes:
        raise NotImplementedError


class SshKeygenSigner(Signer):
    """使用 ssh-keygen -Y sign 和本地私钥签名"""

    def __init__(self, private_key: str, namespace: str = "berrymx-api", ssh_keygen: str = "ssh-keygen"):
        self.private_key = private_key
        self.namespace = namespace
        self.ssh_keygen = ssh_keygen

    def sign(self, message: bytes) -> bytes:
        cmd = [self.ssh_keygen, "-Y", "sign", "-q", "-f", self.private_key, "-n", self.namespace]
        try:
            result = subprocess.run(cmd, input=message, capture_output=True)
        except OSError as e:
            raise SigningError(f"ssh-keygen failed to run: {str(e)}") from e
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", "replace").strip()
            raise SigningError(f"ssh-keygen sign failed: {stderr}")
        return result.stdout


class InMemorySigner(Signer):
    """HMAC signer paired with InMemorySignatureVerifier."""

    def __init__(self, secret: Union[bytes, str]):
        self.secret = secret.encode("utf-8") if isinstance(secret, str) else secret

    def sign(self, message: bytes) -> bytes:
        return hmac.new(self.secret, message, hashlib.sha256).digest()


def sign_request(
    signer: Signer,
    key_id: str,
    method: str,
    path: str,
    body: Body = b"",
    timestamp: Optional[Union[int, str]] = None,
) -> Dict[str, str]:
    """Sign a request and return the auth headers to send with it."""
    if timestamp is None:
        timestamp = int(time.time())
    message = build_signed_message(method, path, timestamp, body)
    signature = signer.sign(message.encode("utf-8"))
    return {
        KEY_ID_HEADER: key_id,
        SIGNATURE_HEADER: base64.b64encode(signature).decode("ascii"),
        TIMESTAMP_HEADER: str(timestamp),
    }
