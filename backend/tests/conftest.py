"""Shared fixtures: keep bundle files inside the test's tmp_path."""

import pytest

from shared.config import settings


@pytest.fixture(autouse=True)
def bundle_paths(tmp_path, monkeypatch):
    """Point the default bundle paths at tmp_path instead of /tmp."""
    paths = {
        "TMPPKI_KEY_PATH": str(tmp_path / "server.key"),
        "TMPPKI_CERT_PATH": str(tmp_path / "server.crt"),
        "TMPPKI_CA_KEY_PATH": str(tmp_path / "tmppki-ca.key"),
        "TMPPKI_CA_CERT_PATH": str(tmp_path / "tmppki-ca.crt"),
    }
    for name, value in paths.items():
        monkeypatch.setattr(settings, name, value)
    return paths
