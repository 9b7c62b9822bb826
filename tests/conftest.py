import sqlite3

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from opsbot.config import Settings
from opsbot.db import Database
from opsbot.llm import GenerationError
from opsbot.main import app, get_context
from opsbot.pipeline import AppContext
from opsbot.reports import ReportProvider

# SQLite stand-in for INFORMATION_SCHEMA.COLUMNS
SQLITE_CATALOG_QUERY = """
    SELECT m.name, p.name, lower(p.type),
           CASE WHEN p."notnull" = 1 THEN 'NO' ELSE 'YES' END,
           p.dflt_value
    FROM sqlite_master AS m
    JOIN pragma_table_info(m.name) AS p
    WHERE m.type = 'table'
    ORDER BY m.name, p.cid
"""

SQL_PROMPT_MARKER = "Convert this natural language query to SQL"


class FakeLLM:
    """
    Scripted model: `sql` answers SQL prompts, `narrative` answers the rest.
    Either may be an exception instance, which is raised instead.
    """

    def __init__(self, sql="SELECT 1", narrative="Here is what I found."):
        self.sql = sql
        self.narrative = narrative
        self.prompts = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.sql if SQL_PROMPT_MARKER in prompt else self.narrative
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def sql_prompts(self):
        return [p for p in self.prompts if SQL_PROMPT_MARKER in p]

    async def aclose(self):
        pass


class BrokenDatabase(Database):
    """Every connection attempt fails."""

    def __init__(self):
        super().__init__(self._refuse)

    @staticmethod
    def _refuse():
        raise sqlite3.OperationalError("connection refused")


def make_sqlite_db(path) -> Database:
    def connect():
        return sqlite3.connect(str(path), check_same_thread=False, isolation_level=None)

    return Database(connect, catalog_query=SQLITE_CATALOG_QUERY)


@pytest.fixture
def db(tmp_path):
    database = make_sqlite_db(tmp_path / "ops.db")
    with database.connection() as conn:
        conn.executescript(
            """
            CREATE TABLE employees (
                id int NOT NULL,
                name text,
                status text DEFAULT 'active'
            );
            INSERT INTO employees VALUES
                (1, 'Asha', 'active'),
                (2, 'Ben', 'active'),
                (3, 'Chen', 'active'),
                (4, 'Dana', 'inactive'),
                (5, 'Eli', 'inactive');
            CREATE TABLE departments (id int, title text);
            """
        )
    return database


@pytest.fixture
def empty_db(tmp_path):
    return make_sqlite_db(tmp_path / "empty.db")


@pytest.fixture
def test_settings():
    return Settings(stage_timeout=5, report_base_url="https://blob.test/ops-data")


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def blob_handler():
    """Replace `.func` on the returned holder to script the blob store."""

    class Holder:
        func = staticmethod(lambda request: httpx.Response(404))

    return Holder


@pytest_asyncio.fixture
async def reports(test_settings, blob_handler):
    transport = httpx.MockTransport(lambda request: blob_handler.func(request))
    provider = ReportProvider(
        test_settings.report_base_url,
        client=httpx.AsyncClient(transport=transport),
    )
    yield provider
    await provider.aclose()


@pytest.fixture
def ctx(test_settings, db, llm, reports):
    return AppContext(settings=test_settings, db=db, llm=llm, reports=reports)


# Client
@pytest_asyncio.fixture
async def client(ctx):
    app.dependency_overrides[get_context] = lambda: ctx

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def generation_error():
    return GenerationError("Model call failed: quota exceeded")
