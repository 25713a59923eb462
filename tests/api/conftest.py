import pytest
from fastapi.testclient import TestClient

from vtoken.main import create_app
from vtoken.presentation.dependencies import get_code_hasher, get_throttle, get_uow
from vtoken.settings import Settings, get_settings
from tests.conftest import TEST_SECRET
from tests.fakes import FakeCodeHasher, FakeThrottle, FakeUoW, InMemoryDb


@pytest.fixture()
def app_and_deps():
    app = create_app()
    db = InMemoryDb()
    uow = FakeUoW(db)
    throttle = FakeThrottle()
    settings = Settings(
        signing_secret=TEST_SECRET,
        link_base_url="https://app.test/verify",
        expose_dev_codes=True,
        resend_throttle_seconds=0,
    )

    app.dependency_overrides[get_uow] = lambda: uow
    app.dependency_overrides[get_code_hasher] = lambda: FakeCodeHasher()
    app.dependency_overrides[get_throttle] = lambda: throttle
    app.dependency_overrides[get_settings] = lambda: settings

    try:
        yield app, db, uow, throttle
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def client(app_and_deps):
    app = app_and_deps[0]
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture()
def db(app_and_deps):
    return app_and_deps[1]


@pytest.fixture()
def shop_owner(db):
    owner = db.add_user(username="shopkeeper", phone="+33612345678")
    db.add_store(owner.id)
    return owner

