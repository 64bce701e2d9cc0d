import os
import sys
import json
import time
import logging

import pytest
from fastapi.testclient import TestClient

# Add src directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "src"))

from berrymx.api.app import create_app
from berrymx.auth import InMemorySignatureVerifier, InMemorySigner, sign_request
from berrymx.core.settings import ServerConfig

ADMIN_KEY_ID = "admin@berrymx"
ADMIN_SECRET = "test-secret"


def pytest_configure(config):
    """Configure logging for pytest"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )


def make_config(root, **overrides) -> ServerConfig:
    root = str(root)
    values = dict(
        admin_root=root,
        data_dir=os.path.join(root, "data"),
        keys_dir=os.path.join(root, "keys"),
        allowed_signers=os.path.join(root, "keys", "allowed_signers"),
        log_file=None,
    )
    values.update(overrides)
    return ServerConfig(**values)


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def signer():
    return InMemorySigner(ADMIN_SECRET)


@pytest.fixture
def app(config):
    return create_app(config, signature_verifier=InMemorySignatureVerifier({ADMIN_KEY_ID: ADMIN_SECRET}))


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def signed(signer):
    """Build (body, headers) for an admin request."""
    def _signed(method, path, payload=None, timestamp=None, raw=None):
        body = raw if raw is not None else (json.dumps(payload).encode("utf-8") if payload is not None else b"")
        headers = sign_request(signer, ADMIN_KEY_ID, method, path, body,
                               timestamp if timestamp is not None else int(time.time()))
        headers["Content-Type"] = "application/json"
        return body, headers
    return _signed
