"""Shared test fixtures: in-memory tenant store, fake backend API, test client."""

from collections.abc import AsyncGenerator
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.fernet import Fernet
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from marketplace.clients.marketplace import MarketplaceClient
from marketplace.core.config import Settings
from marketplace.core.credentials import ClientKind
from marketplace.main import create_app
from marketplace.services.client_cache import ClientCache
from marketplace.services.tenancy import Tenancy, build_tenancy

ADMIN_TOKEN = "test-admin-token"
ADMIN_HEADERS = {"Authorization": f"Bearer {ADMIN_TOKEN}"}


def _user(uid: str, user_type: str, name: str, **public) -> dict:
    return {
        "id": {"uuid": uid},
        "type": "user",
        "attributes": {
            "banned": False,
            "deleted": False,
            "createdAt": "2024-01-15T10:00:00.000Z",
            "profile": {"displayName": name, "publicData": {"userType": user_type, **public}},
        },
    }


def _transaction(tid: str, provider: str, customer: str, transition: str) -> dict:
    return {
        "id": {"uuid": tid},
        "type": "transaction",
        "attributes": {"lastTransition": transition, "createdAt": "2024-02-01T09:00:00.000Z"},
        "relationships": {
            "provider": {"data": {"id": {"uuid": provider}, "type": "user"}},
            "customer": {"data": {"id": {"uuid": customer}, "type": "user"}},
        },
    }


USERS = [
    _user("stu-h1", "student", "Ada H", emailDomain="harvard.edu", university="Harvard", major="Physics",
          graduationYear="2026", studentState="MA", skills=["python", "sql"]),
    _user("stu-h2", "student", "Ben H", emailDomain="harvard.edu", university="Harvard", major="History",
          graduationYear="2025", studentState="MA", skills=["writing"]),
    _user("stu-m1", "student", "Cal M", emailDomain="mit.edu", university="MIT", major="Physics",
          graduationYear="2026", studentState="MA", skills=["python"]),
    _user("edu-h", "educational-admin", "Harvard Admin", institutionDomain="harvard.edu",
          institutionName="Harvard University"),
    _user("edu-m", "educational-admin", "MIT Admin", institutionDomain="mit.edu",
          institutionName="MIT"),
    _user("sys-1", "system-admin", "Platform Admin"),
    _user("corp-1", "corporate-partner", "Acme", companyName="Acme", industry="tech", companyState="MA"),
    _user("corp-2", "corporate-partner", "Globex", companyName="Globex", industry="finance", companyState="NY"),
    _user("corp-3", "corporate-partner", "Initech", companyName="Initech", industry="tech", companyState="TX"),
]

TRANSACTIONS = [
    _transaction("tx-1", "corp-1", "stu-h1", "transition/accept"),
    _transaction("tx-2", "corp-3", "stu-m1", "transition/complete"),
    _transaction("tx-3", "corp-2", "stu-m1", "transition/accept"),
]


class FakeMarketplaceAPI:
    """In-process stand-in for the backend marketplace API.

    Issues ``tok-<client_id>`` tokens and records which client id made
    each data request, so tests can assert credential routing.
    """

    def __init__(self, users: list[dict] | None = None, transactions: list[dict] | None = None) -> None:
        self.users = list(users if users is not None else USERS)
        self.transactions = list(transactions if transactions is not None else TRANSACTIONS)
        self.token_requests: list[str] = []
        self.reject_tokens = False
        self.requests: list[tuple[str, str]] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/v1/auth/token":
            form = parse_qs(request.content.decode())
            client_id = form["client_id"][0]
            self.token_requests.append(client_id)
            if self.reject_tokens:
                return httpx.Response(401, json={"errors": [{"status": 401, "code": "invalid-client"}]})
            return httpx.Response(200, json={"access_token": f"tok-{client_id}", "expires_in": 3600})

        auth = request.headers.get("authorization", "")
        self.requests.append((auth.removeprefix("Bearer tok-"), path))
        params = dict(request.url.params)

        if path.endswith("/users/query"):
            return httpx.Response(200, json=self._query_users(params))
        if path.endswith("/users/show"):
            for user in self.users:
                if user["id"]["uuid"] == params.get("id"):
                    return httpx.Response(200, json={"data": user})
            return httpx.Response(404, json={"errors": [{"status": 404, "code": "not-found"}]})
        if path.endswith("/transactions/query"):
            data = self.transactions
            return httpx.Response(200, json={"data": data, "meta": {"totalItems": len(data), "totalPages": 1}})
        return httpx.Response(404, json={"errors": [{"status": 404, "code": "not-found"}]})

    def _query_users(self, params: dict) -> dict:
        matches = []
        for user in self.users:
            public = user["attributes"]["profile"]["publicData"]
            if "pub_userType" in params and public.get("userType") != params["pub_userType"]:
                continue
            if "pub_emailDomain" in params and public.get("emailDomain") != params["pub_emailDomain"]:
                continue
            if "pub_institutionDomain" in params and public.get("institutionDomain") != params["pub_institutionDomain"]:
                continue
            matches.append(user)
        per_page = int(params.get("perPage", 100))
        page = int(params.get("page", 1))
        total_pages = max(1, -(-len(matches) // per_page))
        start = (page - 1) * per_page
        return {
            "data": matches[start : start + per_page],
            "meta": {"totalItems": len(matches), "totalPages": total_pages, "page": page, "perPage": per_page},
        }


class CountingFactory:
    """Client factory that counts constructions and routes to the fake API."""

    def __init__(self, api: FakeMarketplaceAPI) -> None:
        self.api = api
        self.built: list[tuple[str, ClientKind]] = []

    def __call__(self, client_id: str, client_secret: str, kind: ClientKind) -> MarketplaceClient:
        self.built.append((client_id, kind))
        return MarketplaceClient(
            client_id,
            client_secret,
            base_url="https://api.test",
            transport=self.api.transport(),
        )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        base_domain="street2ivy.com",
        marketplace_name="Street2Ivy",
        client_id="default-client",
        client_secret="default-secret",
        integration_client_id="default-integ",
        integration_client_secret="default-integ-secret",
        admin_api_token=ADMIN_TOKEN,
        store_timeout_seconds=2.0,
        encryption_key=Fernet.generate_key().decode(),
    )


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield eng
    await eng.dispose()


@pytest.fixture
def fake_api() -> FakeMarketplaceAPI:
    return FakeMarketplaceAPI()


@pytest.fixture
def client_factory(fake_api) -> CountingFactory:
    return CountingFactory(fake_api)


@pytest.fixture
async def tenancy(settings, engine, client_factory) -> AsyncGenerator[Tenancy, None]:
    built = await build_tenancy(settings, engine=engine)
    built.clients = ClientCache(settings, factory=client_factory, lookup=built.registry.resolve_by_id)
    yield built
    await built.clients.aclose()


@pytest.fixture
def registry(tenancy):
    return tenancy.registry


@pytest.fixture
def app(settings, tenancy):
    return create_app(settings, tenancy)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client on the bare base domain (default tenant)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://street2ivy.com") as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict:
    return dict(ADMIN_HEADERS)


def tenant_host(subdomain: str) -> dict:
    return {"host": f"{subdomain}.street2ivy.com"}


@pytest.fixture
def host_for():
    return tenant_host
