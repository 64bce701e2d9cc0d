"""Admin request verification.

:class:`RequestVerifier` checks headers and freshness, builds the canonical
message and hands the cryptographic check to a :class:`SignatureVerifier`
backend. Production uses :class:`SshKeygenVerifier` against an SSH
allowed-signers file; tests use :class:`InMemorySignatureVerifier`.
"""

import os
import re
import hmac
import math
import time
import base64
import binascii
import hashlib
import logging
import tempfile
import subprocess
from typing import Callable, Dict, Mapping, NamedTuple, Optional, Union

from .signing import (
    KEY_ID_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    Body,
    build_signed_message,
)
from berrymx.monitoring.metrics import metrics_collector

logger = logging.getLogger(__name__)

MISSING_HEADERS = "Missing SSH auth headers"
INVALID_TIMESTAMP = "Invalid timestamp"
TIMESTAMP_OUT_OF_RANGE = "Timestamp out of range"
SIGNERS_NOT_FOUND = "Allowed signers file not found"
SSH_KEYGEN_FAILED = "ssh-keygen failed to run"
SIGNATURE_FAILED = "SSH signature verification failed"

# 十进制秒数，可带小数和指数
TIMESTAMP_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


class AuthResult(NamedTuple):
    ok: bool
    error: Optional[str] = None


AUTH_OK = AuthResult(ok=True)


def _denied(reason: str) -> AuthResult:
    return AuthResult(ok=False, error=reason)


class SignatureVerifier:
    """签名校验后端接口"""

    def verify(self, key_id: str, message: bytes, signature: bytes) -> AuthResult:
        raise NotImplementedError


class SshKeygenVerifier(SignatureVerifier):
    """Verify with ``ssh-keygen -Y verify`` and an allowed-signers file."""

    def __init__(self, allowed_signers: str, namespace: str = "berrymx-api", ssh_keygen: str = "ssh-keygen"):
        self.allowed_signers = allowed_signers
        self.namespace = namespace
        self.ssh_keygen = ssh_keygen

    def verify(self, key_id: str, message: bytes, signature: bytes) -> AuthResult:
        if not os.path.exists(self.allowed_signers):
            logger.error(f"Allowed signers file missing: {self.allowed_signers}")
            return _denied(SIGNERS_NOT_FOUND)

        fd, signature_path = tempfile.mkstemp(prefix=f"berrymx-sig-{os.getpid()}-", suffix=".sig")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(signature)

            cmd = [
                self.ssh_keygen, "-Y", "verify",
                "-f", self.allowed_signers,
                "-I", key_id,
                "-n", self.namespace,
                "-s", signature_path,
            ]
            try:
                result = subprocess.run(cmd, input=message, capture_output=True)
            except (OSError, subprocess.SubprocessError) as e:
                logger.error(f"Could not run ssh-keygen: {str(e)}")
                return _denied(SSH_KEYGEN_FAILED)

            if result.returncode != 0:
                logger.debug(f"ssh-keygen verify exit {result.returncode}: "
                             f"{result.stderr.decode('utf-8', 'replace').strip()}")
                return _denied(SIGNATURE_FAILED)
            return AUTH_OK
        finally:
            try:
                os.unlink(signature_path)
            except FileNotFoundError:
                pass


class InMemorySignatureVerifier(SignatureVerifier):
    """HMAC-SHA256 registry of key id -> secret."""

    def __init__(self, keys: Optional[Dict[str, Union[bytes, str]]] = None):
        self.keys = {}
        for key_id, secret in (keys or {}).items():
            self.add_key(key_id, secret)

    def add_key(self, key_id: str, secret: Union[bytes, str]) -> None:
        self.keys[key_id] = secret.encode("utf-8") if isinstance(secret, str) else secret

    def verify(self, key_id: str, message: bytes, signature: bytes) -> AuthResult:
        # 未知 key 与错误签名返回同样的结果
        secret = self.keys.get(key_id, b"")
        expected = hmac.new(secret, message, hashlib.sha256).digest()
        if key_id in self.keys and hmac.compare_digest(expected, signature):
            return AUTH_OK
        return _denied(SIGNATURE_FAILED)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    if value is None:
        return None
    value = value.strip()
    return value or None


class RequestVerifier:
    """管理请求签名校验"""

    def __init__(
        self,
        backend: SignatureVerifier,
        clock_skew_seconds: int = 5 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.clock_skew_seconds = clock_skew_seconds
        self.clock = clock

    def check_timestamp(self, timestamp: str) -> Optional[str]:
        if not TIMESTAMP_RE.fullmatch(timestamp):
            return INVALID_TIMESTAMP
        seconds = float(timestamp)
        if not math.isfinite(seconds):
            return INVALID_TIMESTAMP
        if abs(self.clock() - seconds) > self.clock_skew_seconds:
            return TIMESTAMP_OUT_OF_RANGE
        return None

    def verify(self, method: str, path: str, body: Body, headers: Mapping[str, str]) -> AuthResult:
        """Check auth headers, freshness and signature for one request."""
        result = self._verify(method, path, body, headers)
        metrics_collector.track_verification(result.ok)
        key_id = _header(headers, KEY_ID_HEADER)
        if result.ok:
            logger.info(f"Admin request verified: {method} {path} key={key_id}")
        else:
            logger.warning(f"Admin request rejected: {method} {path} key={key_id} reason={result.error}")
        return result

    def _verify(self, method: str, path: str, body: Body, headers: Mapping[str, str]) -> AuthResult:
        key_id = _header(headers, KEY_ID_HEADER)
        signature_b64 = _header(headers, SIGNATURE_HEADER)
        timestamp = _header(headers, TIMESTAMP_HEADER)
        if not key_id or not signature_b64 or not timestamp:
            return _denied(MISSING_HEADERS)

        error = self.check_timestamp(timestamp)
        if error:
            return _denied(error)

        try:
            signature = base64.b64decode(signature_b64)
        except (binascii.Error, ValueError):
            return _denied(SIGNATURE_FAILED)

        message = build_signed_message(method, path, timestamp, body)
        return self.backend.verify(key_id, message.encode("utf-8"), signature)
