import pytest


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("QRNG_CONTRACT_OWNER", "QRNG_STATE_KEY", "REDIS_PASSWORD"):
        monkeypatch.delenv(var, raising=False)
