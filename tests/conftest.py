import logging
from pathlib import Path

import pytest

from h2o2.config import get_settings
from h2o2.install.platforms import current_platform
from h2o2.logging import clear_context


@pytest.fixture(autouse=True)
def test_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("H2O2_CONFIG_PATH", str(tmp_path / "h2o2config"))
    monkeypatch.setenv("H2O2_COM_DIR", str(tmp_path / "components"))
    monkeypatch.setenv("H2O2_PROBE_TIMEOUT_SECONDS", "1")
    monkeypatch.setenv("H2O2_LOG_JSON", "0")
    get_settings.cache_clear()
    current_platform.cache_clear()
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    # CLI invocations install a handler bound to the runner's captured stderr
    root.handlers[:] = handlers
    root.setLevel(level)
    get_settings.cache_clear()
    current_platform.cache_clear()
    clear_context()
