import pytest

from tests.gym_helpers import FakeGymApi


@pytest.fixture
def fake_api() -> FakeGymApi:
    return FakeGymApi()


@pytest.fixture
def gym_env(monkeypatch, tmp_path):
    monkeypatch.setenv("GYM_API_BASE_URL", "http://gym.test")
    monkeypatch.setenv("GYM_TOKEN_STORE_PATH", str(tmp_path / "tokens.json"))
    monkeypatch.delenv("GYM_API_TIMEOUT", raising=False)
    monkeypatch.delenv("GYM_API_DEBUG", raising=False)
    return tmp_path
