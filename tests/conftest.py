import os

# settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RPC_URL", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from crefy import models  # noqa: F401
from crefy.auth import admin_token, wallet_token
from crefy.database import enforce_foreign_keys, get_session
from crefy.main import app
from crefy.store import TenantStore

OWNER_WALLET = "0x1111111111111111111111111111111111111111"
STRANGER_WALLET = "0x2222222222222222222222222222222222222222"
CONTRACT_ADDRESS = "0x3333333333333333333333333333333333333333"


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enforce_foreign_keys(engine)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def file_engine(tmp_path):
    """Engine on a database file, for tests that use several connections at once."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'crefy.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    enforce_foreign_keys(engine)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(session):
    return TenantStore(session)


@pytest.fixture
def client(engine):
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return auth_header(admin_token("admin@crefy.test"))


@pytest.fixture
def owner_headers():
    return auth_header(wallet_token(OWNER_WALLET))


@pytest.fixture
def stranger_headers():
    return auth_header(wallet_token(STRANGER_WALLET))


@pytest.fixture
def company_payload():
    def build(**overrides):
        payload = {
            "name": "Acme Corp",
            "adminAddress": OWNER_WALLET,
            "contactEmail": "team@acme.io",
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def campaign_payload():
    def build(company_id, **overrides):
        payload = {
            "companyId": company_id,
            "name": "Spring Tour",
            "description": "Campus tour collectibles",
            "type": "UNIVERSITY_TOUR",
            "status": "ACTIVE",
            "startDate": "2025-01-01T00:00:00Z",
            "endDate": "2025-02-01T00:00:00Z",
            "contractAddress": CONTRACT_ADDRESS,
            "contractNetwork": "sepolia",
            "nftConfig": {
                "name": "Spring Tour NFT",
                "symbol": "SPRING",
                "description": "Thanks for visiting",
                "metadataFormat": "ERC721",
                "revealType": "INSTANT",
            },
            "accessControl": {"accessType": "PUBLIC"},
            "mintLimit": 100,
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def create_company(client, admin_headers, company_payload):
    def create(**overrides):
        response = client.post("/companies", json=company_payload(**overrides), headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()
    return create


@pytest.fixture
def create_campaign(client, admin_headers, campaign_payload):
    def create(company_id, **overrides):
        response = client.post("/campaigns", json=campaign_payload(company_id, **overrides), headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()
    return create
