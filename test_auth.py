import os
import base64
import hashlib
import logging
import shutil
import subprocess
import tempfile
import time

import pytest

from berrymx.auth import (
    KEY_ID_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    InMemorySignatureVerifier,
    InMemorySigner,
    RequestVerifier,
    SshKeygenSigner,
    SshKeygenVerifier,
    build_signed_message,
    sign_request,
)
from berrymx.auth.verifier import (
    INVALID_TIMESTAMP,
    MISSING_HEADERS,
    SIGNATURE_FAILED,
    SIGNERS_NOT_FOUND,
    SSH_KEYGEN_FAILED,
    TIMESTAMP_OUT_OF_RANGE,
)

logger = logging.getLogger(__name__)

NOW = 1_700_000_000
KEY_ID = "admin@berrymx"
SECRET = "s3cret"


@pytest.fixture
def verifier():
    return RequestVerifier(InMemorySignatureVerifier({KEY_ID: SECRET}), clock=lambda: NOW)


def headers_for(method, path, body, timestamp=NOW, key_id=KEY_ID, secret=SECRET):
    return sign_request(InMemorySigner(secret), key_id, method, path, body, timestamp)


def test_canonical_message_format():
    """测试规范消息格式"""
    body = b'{"title":"X"}'
    message = build_signed_message("PUT", "/api/projects/abc", NOW, body)
    assert message == f"PUT\n/api/projects/abc\n{NOW}\n{hashlib.sha256(body).hexdigest()}\n"


def test_canonical_message_is_deterministic():
    assert build_signed_message("POST", "/api/news", "1", "ü") == build_signed_message("POST", "/api/news", "1", "ü".encode("utf-8"))
    empty_hash = hashlib.sha256(b"").hexdigest()
    assert build_signed_message("DELETE", "/api/news/1", "1", None).endswith(f"{empty_hash}\n")


def test_valid_signature_is_accepted(verifier):
    body = b'{"title":"X"}'
    result = verifier.verify("PUT", "/api/projects/abc", body, headers_for("PUT", "/api/projects/abc", body))
    assert result.ok
    assert result.error is None


@pytest.mark.parametrize("method,path,body,timestamp", [
    ("POST", "/api/projects/abc", b'{"title":"X"}', NOW),
    ("PUT", "/api/projects/abd", b'{"title":"X"}', NOW),
    ("PUT", "/api/projects/abc", b'{"title":"Y"}', NOW),
    ("PUT", "/api/projects/abc", b'{"title":"X"}', NOW + 1),
])
def test_changing_any_component_invalidates_signature(verifier, method, path, body, timestamp):
    """测试任一组成部分被篡改都会使签名失效"""
    headers = headers_for("PUT", "/api/projects/abc", b'{"title":"X"}')
    headers[TIMESTAMP_HEADER] = str(timestamp)
    result = verifier.verify(method, path, body, headers)
    assert not result.ok
    assert result.error == SIGNATURE_FAILED


def test_missing_headers(verifier):
    headers = headers_for("POST", "/api/news", b"{}")
    for name in (KEY_ID_HEADER, SIGNATURE_HEADER, TIMESTAMP_HEADER):
        partial = {k: v for k, v in headers.items() if k != name}
        assert verifier.verify("POST", "/api/news", b"{}", partial).error == MISSING_HEADERS
    blank = dict(headers, **{KEY_ID_HEADER: "  "})
    assert verifier.verify("POST", "/api/news", b"{}", blank).error == MISSING_HEADERS


def test_headers_are_case_insensitive(verifier):
    headers = {k.lower(): v for k, v in headers_for("POST", "/api/news", b"{}").items()}
    assert verifier.verify("POST", "/api/news", b"{}", headers).ok


@pytest.mark.parametrize("offset", [301, -301, 3600])
def test_stale_timestamp_rejected_even_with_valid_signature(verifier, offset):
    headers = headers_for("POST", "/api/news", b"{}", timestamp=NOW + offset)
    assert verifier.verify("POST", "/api/news", b"{}", headers).error == TIMESTAMP_OUT_OF_RANGE


@pytest.mark.parametrize("offset", [0, 300, -300])
def test_timestamp_inside_window_accepted(verifier, offset):
    headers = headers_for("POST", "/api/news", b"{}", timestamp=NOW + offset)
    assert verifier.verify("POST", "/api/news", b"{}", headers).ok


@pytest.mark.parametrize("timestamp", [
    "abc", "nan", "inf", "12abc", "1_700_000_000", "0x6553f100", "1e999", "1700000000.5.1",
])
def test_unparsable_timestamp(verifier, timestamp):
    headers = headers_for("POST", "/api/news", b"{}", timestamp=timestamp)
    assert verifier.verify("POST", "/api/news", b"{}", headers).error == INVALID_TIMESTAMP


@pytest.mark.parametrize("timestamp", ["1700000000.250", "1.7e9", "+1700000000"])
def test_decimal_timestamp_forms_accepted(verifier, timestamp):
    headers = headers_for("POST", "/api/news", b"{}", timestamp=timestamp)
    assert verifier.verify("POST", "/api/news", b"{}", headers).ok


def test_unknown_key_and_bad_signature_look_the_same(verifier):
    unknown_key = headers_for("POST", "/api/news", b"{}", key_id="intruder")
    wrong_secret = headers_for("POST", "/api/news", b"{}", secret="guess")
    garbage = dict(headers_for("POST", "/api/news", b"{}"), **{SIGNATURE_HEADER: "%%%"})
    errors = {verifier.verify("POST", "/api/news", b"{}", h).error for h in (unknown_key, wrong_secret, garbage)}
    assert errors == {SIGNATURE_FAILED}


def test_ssh_keygen_verifier_requires_allowed_signers(tmp_path):
    backend = SshKeygenVerifier(str(tmp_path / "missing_signers"))
    assert backend.verify(KEY_ID, b"msg", b"sig").error == SIGNERS_NOT_FOUND


def test_ssh_keygen_verifier_reports_failed_run_and_cleans_up(tmp_path, monkeypatch):
    """测试 ssh-keygen 无法运行时清理临时签名文件"""
    signers = tmp_path / "allowed_signers"
    signers.write_text(f"{KEY_ID} ssh-ed25519 AAAA\n", encoding="utf-8")
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))

    backend = SshKeygenVerifier(str(signers), ssh_keygen=str(tmp_path / "no-such-ssh-keygen"))
    assert backend.verify(KEY_ID, b"msg", b"sig").error == SSH_KEYGEN_FAILED
    assert os.listdir(scratch) == []


@pytest.fixture
def ssh_identity(tmp_path):
    if shutil.which("ssh-keygen") is None:
        pytest.skip("ssh-keygen not available")
    key = tmp_path / "id_ed25519"
    subprocess.run(
        ["ssh-keygen", "-q", "-t", "ed25519", "-N", "", "-C", KEY_ID, "-f", str(key)],
        check=True, capture_output=True,
    )
    public_key = (tmp_path / "id_ed25519.pub").read_text(encoding="utf-8").strip()
    signers = tmp_path / "allowed_signers"
    signers.write_text(f"{KEY_ID} {public_key}\n", encoding="utf-8")
    return str(key), str(signers)


def test_ssh_keygen_round_trip(ssh_identity):
    """测试真实 ssh-keygen 签名与校验"""
    private_key, signers = ssh_identity
    namespace = "berrymx-api"
    verifier = RequestVerifier(SshKeygenVerifier(signers, namespace=namespace))
    body = b'{"title":"X"}'
    now = int(time.time())

    headers = sign_request(SshKeygenSigner(private_key, namespace=namespace), KEY_ID, "PUT", "/api/projects/1", body, now)
    logger.info(f"Signature header length: {len(headers[SIGNATURE_HEADER])}")
    assert base64.b64decode(headers[SIGNATURE_HEADER]).startswith(b"-----BEGIN SSH SIGNATURE-----")

    assert verifier.verify("PUT", "/api/projects/1", body, headers).ok
    assert verifier.verify("PUT", "/api/projects/1", b'{"title":"Y"}', headers).error == SIGNATURE_FAILED
    assert verifier.verify("PUT", "/api/projects/2", body, headers).error == SIGNATURE_FAILED

    other_identity = dict(headers, **{KEY_ID_HEADER: "someone@else"})
    assert verifier.verify("PUT", "/api/projects/1", body, other_identity).error == SIGNATURE_FAILED


def test_ssh_keygen_wrong_namespace_rejected(ssh_identity):
    private_key, signers = ssh_identity
    verifier = RequestVerifier(SshKeygenVerifier(signers, namespace="berrymx-api"))
    headers = sign_request(SshKeygenSigner(private_key, namespace="other"), KEY_ID, "POST", "/api/news", b"{}")
    assert verifier.verify("POST", "/api/news", b"{}", headers).error == SIGNATURE_FAILED
