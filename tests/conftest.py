from __future__ import annotations

import os
import shutil
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="hirebit-tests-"))
os.environ.update(
    {
        "APP_ENV": "test",
        "DATABASE_URL": f"sqlite:///{_TEST_ROOT / 'hirebit.db'}",
        "DATA_DIR": str(_TEST_ROOT),
        "STORAGE_DIR": str(_TEST_ROOT / "storage"),
        "STORAGE_PUBLIC_URL": "",
        "OPENAI_API_KEY": "",
        "LOCAL_LLM_ENABLED": "false",
        "SMTP_HOST": "",
        "IMAP_HOST": "",
        "IMAP_USER": "",
        "IMAP_PASSWORD": "",
        "REPORT_WORKERS": "1",
    }
)

import pytest  # noqa: E402

from hirebit.config import Settings  # noqa: E402
from hirebit.db.base import Base, utcnow  # noqa: E402
from hirebit.db.repositories import Repository  # noqa: E402
from hirebit.db.schema import resolve_schema_features  # noqa: E402
from hirebit.db.session import SessionLocal, engine  # noqa: E402
from hirebit.llm.providers import ProviderConfig  # noqa: E402
from hirebit.llm.router import LLMRouter  # noqa: E402
from hirebit.mail.mailbox import InboundMessage  # noqa: E402
from hirebit.storage import BlobStore  # noqa: E402
from hirebit.types import OutboundEmail  # noqa: E402


class FakeTransport:
    def __init__(self, *, fail: bool = False):
        self.sent: list[OutboundEmail] = []
        self.fail = fail

    def send(self, message: OutboundEmail) -> bool:
        if self.fail:
            raise ConnectionError("smtp unavailable")
        self.sent.append(message)
        return True


class FakeMailbox:
    def __init__(self, messages: list[InboundMessage]):
        self.messages = messages
        self.seen: list[str] = []

    def __enter__(self) -> "FakeMailbox":
        return self

    def __exit__(self, *exc_info) -> None:
        return None

    def fetch_unseen(self, limit: int) -> list[InboundMessage]:
        return [message for message in self.messages if message.uid not in self.seen][:limit]

    def mark_seen(self, uid: str) -> None:
        self.seen.append(uid)


class FakeProvider:
    def __init__(self, payloads: list[dict] | None = None, *, error: Exception | None = None):
        self.config = ProviderConfig(name="openai", base_url="http://localhost:9999/v1", api_key="dummy", timeout_sec=5)
        self.payloads = list(payloads or [])
        self.error = error
        self.calls: list[dict] = []

    def complete_json(self, *, model: str, prompt: str, system: str | None = None) -> dict:
        self.calls.append({"model": model, "prompt": prompt, "system": system})
        if self.error is not None:
            raise self.error
        return self.payloads.pop(0) if self.payloads else {}


class FakePool:
    def __init__(self, *providers: FakeProvider):
        self.providers = list(providers)

    def ordered(self) -> list[FakeProvider]:
        return list(self.providers)


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    resolve_schema_features.cache_clear()
    shutil.rmtree(_TEST_ROOT / "storage", ignore_errors=True)
    yield


@pytest.fixture
def settings() -> Settings:
    return Settings(report_workers=1)


@pytest.fixture
def db():
    with SessionLocal() as session:
        yield session


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def store(settings: Settings) -> BlobStore:
    return BlobStore(settings)


@pytest.fixture
def heuristic_router(settings: Settings) -> LLMRouter:
    return LLMRouter(settings, pool=FakePool())


@pytest.fixture
def make_job(db):
    def factory(
        *,
        title: str = "Backend Engineer",
        company_name: str = "Acme",
        required_skills: list[str] | None = None,
        deadline: datetime | None = None,
        webhook_secret: str = "s3cret",
        **kwargs,
    ):
        if deadline is None:
            deadline = utcnow() + timedelta(days=7)
        return Repository(db).create_job_posting(
            company_name=company_name,
            title=title,
            company_email=kwargs.pop("company_email", "jobs@acme.test"),
            hr_email=kwargs.pop("hr_email", "hr@acme.test"),
            required_skills=required_skills if required_skills is not None else ["python", "sql", "docker"],
            application_deadline=deadline,
            webhook_secret=webhook_secret,
            **kwargs,
        )

    return factory


@pytest.fixture
def failing_transport() -> FakeTransport:
    return FakeTransport(fail=True)


@pytest.fixture
def model_router(settings: Settings):
    """Router backed by a scripted provider; pass the JSON payloads it should return in order."""

    def factory(*payloads: dict, error: Exception | None = None) -> LLMRouter:
        provider = FakeProvider(list(payloads), error=error)
        return LLMRouter(settings, pool=FakePool(provider))

    return factory


@pytest.fixture
def mailbox():
    def factory(*messages: InboundMessage) -> FakeMailbox:
        return FakeMailbox(list(messages))

    return factory
