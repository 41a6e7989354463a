# tests/conftest.py
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]  # repository root
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import gallery.app.api as api_module  # noqa: E402
from gallery.config import Settings  # noqa: E402
from gallery.services.security_service import security_service  # noqa: E402


@pytest.fixture()
def gallery_settings(tmp_path, monkeypatch):
    """Point the API at isolated storage under tmp_path."""
    settings = Settings(
        upload_dir=tmp_path / "uploads",
        ledger_path=tmp_path / "images.json",
    )
    monkeypatch.setattr(api_module, "settings", settings)
    return settings


@pytest.fixture(autouse=True)
def reset_audit_log():
    """Ensure audit state does not leak across tests."""
    security_service.audit_logger.clear()
    yield
    security_service.audit_logger.clear()
