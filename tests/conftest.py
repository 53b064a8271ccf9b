"""Root pytest configuration for all tests."""

from __future__ import annotations

import shutil
from collections.abc import Iterator
from pathlib import Path

import pytest

from spectre_lsp.config import reset_config
from spectre_lsp.transport.session import ServerSession


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep the user's config files and environment out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("SPECTRE_LSP_SERVER", raising=False)
    monkeypatch.delenv("SPECTRE_LSP_LOG", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def cat_path() -> str:
    path = shutil.which("cat")
    if path is None:
        pytest.skip("cat not available")
    return path


@pytest.fixture
def sh_path() -> str:
    path = shutil.which("sh")
    if path is None:
        pytest.skip("sh not available")
    return path


@pytest.fixture
def session() -> Iterator[ServerSession]:
    """A session that is always stopped at teardown."""
    s = ServerSession()
    yield s
    s.stop()
