import threading

import pytest

from fastapi.testclient import TestClient

from app.core.config import Settings
from app.core.database import Database
from app.chat.conversations import ConversationManager
from app.chat.messages import MessageManager
from app.chat.queries import ConversationQueries
from app.main import create_app
from app.users.service import UserService


@pytest.fixture()
def database():
    """A fresh in-memory SQLite store for each test."""
    db = Database("sqlite://")
    db.create_schema()
    yield db
    db.dispose()


@pytest.fixture()
def file_database(tmp_path):
    """A SQLite file store with a connection per thread, for concurrent callers."""
    db = Database(f"sqlite:///{tmp_path / 'chat.db'}")
    db.create_schema()
    yield db
    db.dispose()


def run_concurrently(workers, target):
    """Start ``workers`` threads that call ``target(index)`` together; return (results, errors)."""
    barrier = threading.Barrier(workers)
    results, errors = [], []
    lock = threading.Lock()

    def run(index):
        barrier.wait()
        try:
            result = target(index)
        except Exception as error:
            with lock:
                errors.append(error)
            return
        with lock:
            results.append(result)

    threads = [threading.Thread(target=run, args=(i,)) for i in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results, errors


@pytest.fixture()
def users(database):
    return UserService(database)


@pytest.fixture()
def conversations(database):
    return ConversationManager(database)


@pytest.fixture()
def messages(database):
    return MessageManager(database)


@pytest.fixture()
def queries(database):
    return ConversationQueries(database)


@pytest.fixture()
def alice(users):
    user_id, _ = users.login("alice")
    return user_id


@pytest.fixture()
def bob(users, alice):
    user_id, _ = users.login("bob")
    return user_id


@pytest.fixture()
def carol(users, bob):
    user_id, _ = users.login("carol")
    return user_id


@pytest.fixture()
def dave(users, carol):
    user_id, _ = users.login("dave")
    return user_id


@pytest.fixture()
def app(database):
    """FastAPI app sharing the test's database."""
    return create_app(Settings(database_url="sqlite://", log_level="WARNING"), database=database)


@pytest.fixture()
def client(app):
    return TestClient(app)


def auth(user_id):
    return {"Authorization": f"Bearer {user_id}"}
