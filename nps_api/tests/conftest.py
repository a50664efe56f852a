"""Shared fixtures for nps-survey-api tests."""

import pytest

from nps_api.models.campaign import Situation


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Reset all module-level singletons between tests."""
    yield

    # 1. Settings LRU cache
    from nps_api.config import get_settings

    get_settings.cache_clear()

    # 2. HTTP client singleton
    import nps_api.services.http_client as http_mod

    http_mod._client = None

    # 3. Survey session registry (closing cancels timers and retries)
    import nps_api.routers.survey as survey_mod

    if survey_mod._registry is not None:
        survey_mod._registry.close_all()
    survey_mod._registry = None


@pytest.fixture
def mock_settings(monkeypatch):
    """Provide a Settings object with safe test defaults."""
    from nps_api.config import Settings, get_settings

    test_settings = Settings(
        storage_api_url="https://storage.test/api",
        storage_api_key="test-key",
        default_language="en",
        session_ttl_seconds=60,
        max_sessions=10,
    )

    get_settings.cache_clear()
    monkeypatch.setattr("nps_api.config.get_settings", lambda: test_settings)

    # Modules that did `from nps_api.config import get_settings` keep their
    # own binding, so patch each of them too
    for mod_path in [
        "nps_api.services.http_client",
        "nps_api.routers.survey",
    ]:
        monkeypatch.setattr(f"{mod_path}.get_settings", lambda: test_settings)

    return test_settings


@pytest.fixture
def situations() -> list[Situation]:
    return [Situation(id="sit-1", name="Purchase"), Situation(id="sit-2", name="Support")]
