import pytest
from jose import jwt

from workproof.auth import verify_and_get_caller
from workproof.config import Settings
from workproof.errors import Unauthorized
from workproof.models import Role

from .support import JWT_SECRET, PROVIDER, token_for


@pytest.fixture
def settings():
    return Settings(supabase_jwt_secret=JWT_SECRET)


def test_hs256_token_yields_caller(settings):
    caller = verify_and_get_caller(token_for(PROVIDER), settings)
    assert caller.id == PROVIDER.id
    assert caller.role is Role.PROVIDER


def test_role_falls_back_to_user_metadata(settings):
    token = jwt.encode({"sub": "u-1", "user_metadata": {"role": "client"}}, JWT_SECRET, algorithm="HS256")
    assert verify_and_get_caller(token, settings).role is Role.CLIENT


def test_wrong_secret_rejected(settings):
    with pytest.raises(Unauthorized):
        verify_and_get_caller(token_for(PROVIDER, secret="not-the-secret"), settings)


def test_missing_role_rejected(settings):
    token = jwt.encode({"sub": "u-1"}, JWT_SECRET, algorithm="HS256")
    with pytest.raises(Unauthorized):
        verify_and_get_caller(token, settings)


def test_unknown_role_rejected(settings):
    token = jwt.encode({"sub": "u-1", "app_metadata": {"role": "superuser"}}, JWT_SECRET, algorithm="HS256")
    with pytest.raises(Unauthorized):
        verify_and_get_caller(token, settings)


def test_missing_subject_rejected(settings):
    token = jwt.encode({"app_metadata": {"role": "CLIENT"}}, JWT_SECRET, algorithm="HS256")
    with pytest.raises(Unauthorized):
        verify_and_get_caller(token, settings)


def test_issuer_checked_when_supabase_configured():
    settings = Settings(supabase_jwt_secret=JWT_SECRET, supabase_url="https://abc.supabase.co")
    with pytest.raises(Unauthorized):
        verify_and_get_caller(token_for(PROVIDER), settings)

    token = jwt.encode(
        {"sub": "u-1", "iss": "https://abc.supabase.co/auth/v1", "app_metadata": {"role": "ADMIN"}},
        JWT_SECRET,
        algorithm="HS256",
    )
    assert verify_and_get_caller(token, settings).role is Role.ADMIN


def test_garbage_token_without_supabase_rejected(settings):
    with pytest.raises(Unauthorized):
        verify_and_get_caller("not-a-jwt", settings)


class _User:
    id = "u-42"
    app_metadata = {"role": "PROVIDER"}
    user_metadata = {}


class _Resp:
    user = _User()


class _Auth:
    def __init__(self, fail=False):
        self.fail = fail

    def get_user(self, token):
        if self.fail:
            raise RuntimeError("invalid JWT")
        return _Resp()


class _Supabase:
    def __init__(self, fail=False):
        self.auth = _Auth(fail)


def test_supabase_fallback_without_jwt_secret():
    caller = verify_and_get_caller(token_for(PROVIDER), Settings(), _Supabase())
    assert caller.id == "u-42"
    assert caller.role is Role.PROVIDER


def test_supabase_fallback_failure_is_unauthorized():
    with pytest.raises(Unauthorized):
        verify_and_get_caller(token_for(PROVIDER), Settings(), _Supabase(fail=True))
