"""
Shared fixtures for licensed tests.
"""

import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from licensed.cli_config import reset_config

MIT_TEXT = 'MIT License\nCopyright "X"'
BSD_TEXT = "BSD\\License"


@pytest.fixture(autouse=True)
def reset_global_config(monkeypatch):
    """Each test starts from default configuration."""
    for key in (
        "LICENSED_OUTPUT",
        "LICENSED_FUNC",
        "LICENSED_TYPE",
        "LICENSED_VENDOR_DIR",
        "LICENSED_PIP",
        "LICENSED_TOOL_TIMEOUT",
        "LICENSED_LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_dir(tmp_path):
    return tmp_path


@pytest.fixture
def vendored_project(tmp_path):
    """A project with two vendored dependencies and an app package."""
    root = tmp_path / "project"
    (root / "vendor" / "a" / "b").mkdir(parents=True)
    (root / "vendor" / "c" / "d").mkdir(parents=True)
    (root / "vendor" / "a" / "b" / "LICENSE").write_bytes(MIT_TEXT.encode("utf-8"))
    (root / "vendor" / "c" / "d" / "LICENSE.txt").write_bytes(BSD_TEXT.encode("utf-8"))

    app = root / "app"
    app.mkdir()
    (app / "__init__.py").write_text('"""Application package."""\n')
    (app / "core.py").write_text("def main():\n    return 0\n")
    return root


def pip_list_result(names, returncode=0, stdout=None, stderr=""):
    """A CompletedProcess shaped like `pip list --format=json` output."""
    if stdout is None:
        stdout = json.dumps([{"name": name, "version": "1.0.0"} for name in names])
    return subprocess.CompletedProcess(
        args=["pip", "list"], returncode=returncode, stdout=stdout, stderr=stderr
    )


@pytest.fixture
def fake_pip():
    """Patch the pip collaborator; call it with the dependency names to return."""
    patchers = []

    def install(names=(), **kwargs):
        which = patch("licensed.discovery.shutil.which", return_value="/usr/bin/pip")
        run = patch(
            "licensed.discovery.subprocess.run",
            return_value=pip_list_result(names, **kwargs),
        )
        patchers.extend([which, run])
        which.start()
        return run.start()

    yield install

    for patcher in reversed(patchers):
        patcher.stop()


def load_generated(source, function_name="get_license_infos"):
    """Execute generated module source and call its accessor."""
    namespace = {"__name__": "licenses_generated"}
    exec(compile(source, "<generated>", "exec"), namespace)
    return namespace[function_name]()


@pytest.fixture
def project_cwd(vendored_project, monkeypatch):
    """Run from inside the app package of the vendored project."""
    monkeypatch.chdir(vendored_project / "app")
    return Path(vendored_project / "app")
