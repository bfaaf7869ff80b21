"""Shared fixtures: a throwaway SQLite database per test and an app wired to it."""
import pytest
from fastapi import Request
from httpx import AsyncClient, ASGITransport

from secretgate.config import Settings
from secretgate.main import create_app
from secretgate.models import CreateCredentialRequest, CredentialKind
from secretgate.services.credentials import CredentialManager
from secretgate.services.crypto import CipherService
from secretgate.services.stores import CredentialStore, Database, SecretStore

MASTER_KEY = "master-key-for-tests-0001"
ENCRYPTION_KEY = "test-encryption-passphrase-42"


@pytest.fixture
def cipher():
    return CipherService(ENCRYPTION_KEY)


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    yield db
    await db.dispose()


@pytest.fixture
def secret_store(database, cipher):
    return SecretStore(database, cipher)


@pytest.fixture
def credential_store(database, cipher):
    return CredentialStore(database, cipher)


@pytest.fixture
def manager(credential_store, cipher):
    return CredentialManager(credential_store, cipher, master_key=MASTER_KEY)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        ENCRYPTION_KEY=ENCRYPTION_KEY,
        MASTER_API_KEY=MASTER_KEY,
        DATA_DIR=str(tmp_path),
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        LOG_JSON=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def app(settings):
    app = create_app(settings)

    # Stand-in for the tool backend: echoes the JSON-RPC request it received
    @app.post(settings.TOOL_ENDPOINT_PATH)
    async def tool_endpoint(request: Request):
        payload = await request.json()
        return {
            "jsonrpc": "2.0",
            "id": payload.get("id"),
            "result": {
                "echo": payload,
                "principal": request.state.principal.kind.value,
                "is_master": request.state.is_master,
            },
        }

    return app


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def issue_key(app, kind=CredentialKind.USER, allowed=None, owner_id="owner-1", name="test key"):
    """Create a credential through the app's manager and return (key, id)."""
    created = await app.state.credential_manager.create_credential(
        CreateCredentialRequest(name=name, owner_id=owner_id, kind=kind, allowed_resource_names=allowed)
    )
    return created.key, created.id


def master_headers():
    return {"Authorization": f"Bearer {MASTER_KEY}"}


def rpc(method, params=None, id=1):
    body = {"jsonrpc": "2.0", "id": id, "method": method}
    if params is not None:
        body["params"] = params
    return body


def tool_call(name, arguments=None, **params):
    return rpc("tools/call", {"name": name, "arguments": arguments or {}, **params})
