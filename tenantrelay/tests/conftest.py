from __future__ import annotations

import pytest

from tenantrelay.core.config import get_settings
from tenantrelay.services.telemetry import reset_telemetry


@pytest.fixture(autouse=True)
def isolate_process_state() -> None:
    # Settings are cached and telemetry is process-global; reset both around every test.
    get_settings.cache_clear()
    reset_telemetry()
    yield
    get_settings.cache_clear()
    reset_telemetry()
