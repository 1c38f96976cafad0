"""Shared fixtures for architecta tests."""

import pytest
import pytest_asyncio

from fakes import FakeAgent


@pytest.fixture
def tmp_project(tmp_path):
    """Temporary project with .architecta/config.yaml."""
    config_dir = tmp_path / ".architecta"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text("""\
agent:
  provider: anthropic
  model: claude-sonnet-4-5
  max_tokens: 4096
  timeout_sec: 30
reviewer:
  provider: openai
  model: gpt-4o
workflow:
  max_iterations: 3
  auto_approve_high_confidence: false
  max_text_retries: 2
  confidence_thresholds:
    high: 90
    medium: 70
notify:
  webhook_url: ""
  events:
    - plan_ready
""")
    return tmp_path


@pytest.fixture
def fake_agent():
    return FakeAgent()


@pytest_asyncio.fixture
async def db(tmp_path):
    """Real SQLite file database (WAL mode)."""
    from architecta.db import Database
    db = Database(str(tmp_path / "test.db"))
    await db.init()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def memory_db():
    """In-memory database for fast unit tests."""
    from architecta.db import Database
    db = Database(":memory:")
    await db.init()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def store(memory_db):
    from architecta.store import WorkflowStore
    return WorkflowStore(memory_db)


@pytest_asyncio.fixture
async def orchestrator(store, fake_agent):
    """Orchestrator over an in-memory store with the same fake for planning and review."""
    from architecta.config import Config
    from architecta.orchestrator import Orchestrator
    orch = Orchestrator(Config(work_dir="/repo"), store, agent=fake_agent, reviewer_agent=fake_agent)
    yield orch
    await orch.close()
