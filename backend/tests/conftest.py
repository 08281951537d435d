"""
VocabExams - Test Configuration and Fixtures
"""
import os
from contextlib import contextmanager
from typing import Iterator, List, Tuple

import pytest
from faker import Faker
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Set testing environment before the settings object is built
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-for-testing"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["TICK_INTERVAL_SECONDS"] = "60"

from vocab_exam.api.deps import (  # noqa: E402
    get_auth_service,
    get_clock_registry,
    get_exam_service,
    get_hub,
    get_store_scope,
)
from vocab_exam.core.database import Base, build_engine, get_db  # noqa: E402
from vocab_exam.core.exceptions import CollaboratorError  # noqa: E402
from vocab_exam.db import models  # noqa: E402,F401
from vocab_exam.db.models import Teacher, WordSet  # noqa: E402
from vocab_exam.db.store import ExamStore  # noqa: E402
from vocab_exam.main import app  # noqa: E402
from vocab_exam.services.auth_service import AuthService, hash_password  # noqa: E402
from vocab_exam.services.exam_clock import ClockRegistry  # noqa: E402
from vocab_exam.services.exam_service import ExamService  # noqa: E402
from vocab_exam.services.realtime import RealtimeHub  # noqa: E402

fake = Faker()


@pytest.fixture
def engine(tmp_path):
    """File backed SQLite so every session gets its own connection"""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def hub() -> RealtimeHub:
    return RealtimeHub()


@pytest.fixture
def open_store(session_factory, hub):
    """Opens a store on a fresh session, like vocab_exam.db.store.store_scope"""

    @contextmanager
    def scope() -> Iterator[ExamStore]:
        session = session_factory()
        try:
            yield ExamStore(session, hub)
        finally:
            session.close()

    return scope


@pytest.fixture
def store(open_store) -> Iterator[ExamStore]:
    with open_store() as store:
        yield store


@pytest.fixture
def exam_service(open_store) -> ExamService:
    return ExamService(open_store)


class FlakyAnswers:
    """Wraps a store scope so the next ``failures`` answer inserts fail"""

    def __init__(self, open_store, failures=1):
        self.open_store = open_store
        self.failures = failures

    @contextmanager
    def __call__(self):
        with self.open_store() as store:
            create_answer = store.create_answer

            def failing_create_answer(**kwargs):
                if self.failures > 0:
                    self.failures -= 1
                    raise CollaboratorError("save answer", "connection lost")
                return create_answer(**kwargs)

            store.create_answer = failing_create_answer
            yield store


@pytest.fixture
def flaky_answers(open_store):
    """Store scope factory whose first ``failures`` answer inserts fail"""

    def make(failures: int = 1) -> FlakyAnswers:
        return FlakyAnswers(open_store, failures)

    return make


@pytest.fixture
def clock_registry(exam_service) -> ClockRegistry:
    return ClockRegistry(exam_service)


@pytest.fixture
def auth() -> AuthService:
    return AuthService(secret_key="test-secret")


@pytest.fixture
def teacher(store) -> Teacher:
    return store.create_teacher(fake.unique.email().lower(), fake.name(), hash_password("password123"))


@pytest.fixture
def other_teacher(store) -> Teacher:
    return store.create_teacher(fake.unique.email().lower(), fake.name(), hash_password("password123"))


@pytest.fixture
def make_word_set(store, teacher):
    """Create a word set from (text, time limit) pairs, in order"""

    def make(words: List[Tuple[str, int]], owner: Teacher = None, name: str = "Week 1") -> WordSet:
        word_set = store.create_word_set((owner or teacher).id, name)
        for index, (text, limit) in enumerate(words):
            store.create_word(word_set.id, text, limit, index)
        return word_set

    return make


@pytest.fixture
def client(session_factory, hub, open_store, exam_service, clock_registry, auth) -> Iterator[TestClient]:
    """Test client with database and services overridden"""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_hub] = lambda: hub
    app.dependency_overrides[get_store_scope] = lambda: open_store
    app.dependency_overrides[get_exam_service] = lambda: exam_service
    app.dependency_overrides[get_clock_registry] = lambda: clock_registry
    app.dependency_overrides[get_auth_service] = lambda: auth

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(store, auth, teacher) -> dict:
    """Bearer header for the ``teacher`` fixture"""
    session = auth.sign_in(store, teacher.email, "password123")
    return {"Authorization": f"Bearer {session.token}"}
