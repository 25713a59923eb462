import pytest

from vtoken.application.activation_service import ActivationService
from vtoken.application.issue_token import TokenIssuer
from vtoken.application.redeem_link import LinkRedeemer
from vtoken.application.session_binder import SessionBinder
from vtoken.application.verify_token import Verifier
from vtoken.infrastructure.security.signed_token import SignedTokenCodec
from tests.fakes import FakeCodeHasher, FakeThrottle, FakeUoW, InMemoryDb

TEST_SECRET = "test-signing-secret-0123456789abcdef"
FIXED_CODE = "048213"
THIRTY_DAYS = 30 * 86400


@pytest.fixture()
def db():
    return InMemoryDb()


@pytest.fixture()
def uow(db):
    return FakeUoW(db)


@pytest.fixture()
def hasher():
    return FakeCodeHasher()


@pytest.fixture()
def codec():
    return SignedTokenCodec(TEST_SECRET)


@pytest.fixture()
def binder():
    return SessionBinder(extension_seconds=THIRTY_DAYS)


@pytest.fixture()
def throttle():
    return FakeThrottle()


@pytest.fixture()
def make_issuer(uow, hasher, codec, binder, throttle):
    def _make(**overrides) -> TokenIssuer:
        kwargs = dict(
            uow=uow,
            hasher=hasher,
            codec=codec,
            binder=binder,
            throttle=throttle,
            link_base_url="https://app.test/verify",
            default_ttl_seconds=900,
            min_ttl_seconds=60,
            throttle_seconds=60,
            expose_dev_codes=True,
        )
        kwargs.update(overrides)
        return TokenIssuer(**kwargs)

    return _make


@pytest.fixture()
def issuer(make_issuer):
    return make_issuer()


@pytest.fixture()
def make_verifier(uow, hasher, binder):
    def _make(**overrides) -> Verifier:
        kwargs = dict(
            uow=uow,
            hasher=hasher,
            binder=binder,
            activation=ActivationService(),
            max_attempts=5,
            read_retries=1,
        )
        kwargs.update(overrides)
        return Verifier(**kwargs)

    return _make


@pytest.fixture()
def verifier(make_verifier):
    return make_verifier()


@pytest.fixture()
def redeemer(codec, verifier):
    return LinkRedeemer(codec=codec, verifier=verifier)


@pytest.fixture()
def user(db):
    owner = db.add_user(username="shopkeeper", phone="+33612345678")
    db.add_store(owner.id)
    db.add_store(owner.id)
    return owner


@pytest.fixture(autouse=True)
def patch_code(monkeypatch):
    """
    Make the 6-digit code deterministic in all tests.
    You can override in a specific test by re-monkeypatching.
    """
    from vtoken.domain import services as domain_services

    monkeypatch.setattr(domain_services, "generate_6digit_code", lambda: FIXED_CODE)
    yield
