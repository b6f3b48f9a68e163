"""Pytest configuration: throwaway SQLite database, fake adapters, TestClient."""

import asyncio
import json
import os
import tempfile

# Must be set before anything imports app.config / app.db.models
_TMP_DIR = tempfile.mkdtemp(prefix="shoplens-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["SESSION_SECRET"] = "test-secret"
os.environ["APP_ENV"] = "test"
os.environ["GEMINI_API_KEY"] = ""
os.environ["SERPAPI_KEY"] = ""
os.environ["SCRAPENINJA_API_KEY"] = ""
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["SCRAPE_CACHE_DIR"] = ""
os.environ["BASE_URL"] = "http://testserver"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from app.agents.reconciler import Reconciler
from app.db.models import Base, async_session, engine
from app.errors import UpstreamError


# ---------------------------------------------------------------------------
# Fakes for the external adapters
# ---------------------------------------------------------------------------

class FakeLLM:
    """generate() replays `outputs` in order (last one repeats), or calls `responder(prompt)`."""

    def __init__(self, outputs=None, responder=None, error=None):
        self.outputs = list(outputs or [])
        self.responder = responder
        self.error = error
        self.prompts = []

    @property
    def calls(self):
        return len(self.prompts)

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if self.responder is not None:
            return self.responder(prompt)
        return self.outputs[min(len(self.prompts), len(self.outputs)) - 1]


class FakeSerp:
    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error
        self.queries = []

    async def search(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.items)


class FakeScraper:
    """Serves HTML from `pages`; any other URL fails like a dead upstream."""

    def __init__(self, pages=None, delay=0.0):
        self.pages = pages or {}
        self.delay = delay
        self.fetched = []
        self.active = 0
        self.max_active = 0

    async def fetch_html(self, url):
        self.fetched.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if url not in self.pages:
                raise UpstreamError("scrapeninja", "HTTP 404", 404)
            return self.pages[url]
        finally:
            self.active -= 1


class FakeMailer:
    configured = True

    def __init__(self):
        self.sent = []

    async def send_verification_email(self, user_email, name, link):
        self.sent.append((user_email, name, link))
        return True


def product_html(title, price="$199.99"):
    return f"""
    <html><head><title>{title} page</title></head><body>
      <span id="productTitle">{title}</span>
      <span class="a-price"><span class="a-offscreen">{price}</span></span>
      <img id="landingImage" src="/images/{title.replace(' ', '-')}.jpg">
      <span class="a-icon-alt">4.5 out of 5 stars</span>
      <span id="acrCustomerReviewText">1,234 ratings</span>
    </body></html>
    """


def fenced(payload):
    return "```json\n" + json.dumps(payload) + "\n```"


# ---------------------------------------------------------------------------
# Database helpers
# ---------------------------------------------------------------------------

async def _reset_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


def run_db(fn):
    """Run `await fn(session)` on a fresh session in a fresh event loop."""
    async def _go():
        async with async_session() as db:
            return await fn(db)
    return asyncio.run(_go())


def count_rows(model, *where):
    async def _count(db):
        stmt = select(func.count()).select_from(model)
        for clause in where:
            stmt = stmt.where(clause)
        return (await db.execute(stmt)).scalar_one()
    return run_db(_count)


def all_rows(model, *where):
    async def _all(db):
        stmt = select(model)
        for clause in where:
            stmt = stmt.where(clause)
        return (await db.execute(stmt)).scalars().all()
    return run_db(_all)


@pytest.fixture(autouse=True)
def _fresh_db():
    asyncio.run(_reset_tables())
    yield


# ---------------------------------------------------------------------------
# App wiring
# ---------------------------------------------------------------------------

@pytest.fixture
def fakes():
    class _Fakes:
        llm = FakeLLM(outputs=["[]"])
        serp = FakeSerp()
        scraper = FakeScraper()
        mailer = FakeMailer()
        max_attempts = 3
    return _Fakes()


@pytest.fixture
def client(fakes):
    from app.deps import get_mailer, get_reconciler, get_scraper, get_serp
    from app.main import app

    app.dependency_overrides[get_reconciler] = lambda: Reconciler(fakes.llm, max_attempts=fakes.max_attempts)
    app.dependency_overrides[get_serp] = lambda: fakes.serp
    app.dependency_overrides[get_scraper] = lambda: fakes.scraper
    app.dependency_overrides[get_mailer] = lambda: fakes.mailer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def google_login(client, email="shopper@example.com", name="Shopper"):
    """Create a verified (Google) account; the client keeps its session cookie."""
    resp = client.post("/user/create", json={"type": "google", "user": {"email": email, "name": name}})
    assert resp.status_code == 201, resp.text
    return resp.json()["user"]
