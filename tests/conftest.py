import pytest


@pytest.fixture(autouse=True)
def audit_dir(tmp_path, monkeypatch):
    """Keep per-session audit logs out of the working tree."""
    monkeypatch.setenv("BATTLE_LINE_LOG_DIR", str(tmp_path / "sessions"))
    yield tmp_path / "sessions"
