from __future__ import annotations

from collections.abc import Iterator

import pytest

from auth_transport.config import get_settings
from tests._helpers.backend import TEST_BASE_URL


@pytest.fixture(autouse=True)
def _test_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    root = tmp_path_factory.mktemp("at_test")
    monkeypatch.chdir(root)  # keep stray `.env` files out of the settings

    monkeypatch.setenv("API_BASE_URL", TEST_BASE_URL)
    monkeypatch.setenv("AUTH_REFRESH_TIMEOUT_S", "5")
    monkeypatch.setenv("COOKIE_SECURE", "0")
    monkeypatch.setenv("DEVSERVER_USER_EMAIL", "dev@example.com")
    monkeypatch.setenv("DEVSERVER_USER_PASSWORD", "dev-password-123")
    for name in (
        "AUTH_EMAIL",
        "AUTH_PASSWORD",
        "AUTH_AUTO_REFRESH",
        "AUTH_REFRESH_WITH_CREDENTIALS",
        "AUTH_LOG_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
