"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from tests.helpers import HELPER_SOURCE, ITEM_SOURCE, WORKER_SOURCE


@pytest.fixture
def csharp_workspace(tmp_path: Path) -> Path:
    """A small solution: one project with a folder, a sub-project and build output."""

    root = tmp_path / "Sample"
    app = root / "App"
    (app / "Models").mkdir(parents=True)
    (app / "Tools").mkdir()
    (app / "bin" / "Debug").mkdir(parents=True)

    (root / "Sample.sln").write_text("Microsoft Visual Studio Solution File\n", encoding="utf-8")
    (app / "App.csproj").write_text("<Project />\n", encoding="utf-8")
    (app / "Worker.cs").write_text(WORKER_SOURCE, encoding="utf-8")
    (app / "README.md").write_text("# Sample\n", encoding="utf-8")
    (app / "notes.txt").write_text("not indexed\n", encoding="utf-8")
    (app / "Models" / "Item.cs").write_text(ITEM_SOURCE, encoding="utf-8")
    (app / "Tools" / "Tools.csproj").write_text("<Project />\n", encoding="utf-8")
    (app / "Tools" / "Helper.cs").write_text(HELPER_SOURCE, encoding="utf-8")
    (app / "bin" / "Debug" / "Generated.cs").write_text("class Generated { void Skip() {} }\n", encoding="utf-8")
    return root


@pytest.fixture
def isolated_settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Clear ``CHATSTUDIO_*`` variables and point logs at a temporary directory."""

    for name in list(os.environ):
        if name.startswith("CHATSTUDIO_"):
            monkeypatch.delenv(name, raising=False)
    log_dir = tmp_path / "logs"
    monkeypatch.setenv("CHATSTUDIO_LOG_DIR", str(log_dir))
    return log_dir
