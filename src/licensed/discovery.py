"""
Discovery of the inputs a generation run needs.

Finds the project root holding the vendor directory, asks pip which
distributions are vendored there, locates a license file for each one and
determines the package the generated module is written into.
"""

import ast
import json
import re
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from .dependency import DependencyRecord
from .error_handling import (
    DependencyToolError,
    ProjectRootNotFound,
    TargetModuleError,
)
from .structured_logging import log_dependencies_loaded, log_license_located

# The preferred license file name when a dependency ships several.
PREFERRED_LICENSE_NAME = "LICENSE"


def find_project_root(start: Path, vendor_dir: str = "vendor") -> Path:
    """
    Walk upward from start to the first directory containing vendor_dir.

    Raises:
        ProjectRootNotFound: If no ancestor holds a vendor directory
    """
    path = start.resolve()
    for candidate in [path, *path.parents]:
        if (candidate / vendor_dir).is_dir():
            return candidate
    raise ProjectRootNotFound(
        f"No project root found: no {vendor_dir}/ directory above {path}"
    )


def _last_line(text: str) -> str:
    lines = [line for line in text.strip().splitlines() if line.strip()]
    return lines[-1] if lines else ""


def get_dependencies(
    root: Path,
    vendor_dir: str = "vendor",
    pip_executable: str = "pip",
    timeout_seconds: int = 60,
) -> List[DependencyRecord]:
    """
    List the distributions vendored under root/vendor_dir, in pip's order.

    Raises:
        DependencyToolError: If pip is unavailable, fails or returns
            something other than a JSON list of named distributions
    """
    pip_path = shutil.which(pip_executable)
    if pip_path is None:
        raise DependencyToolError(f"{pip_executable} not installed")

    command = [
        pip_path,
        "list",
        "--format=json",
        "--disable-pip-version-check",
        "--path",
        str(root / vendor_dir),
    ]
    try:
        completed = subprocess.run(
            command,
            cwd=root,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
            check=False,
        )
    except subprocess.TimeoutExpired:
        raise DependencyToolError(
            f"{pip_executable} list timed out after {timeout_seconds}s"
        )
    except OSError as e:
        raise DependencyToolError(f"Failed to run {pip_executable}: {e}")

    if completed.returncode != 0:
        raise DependencyToolError(
            f"{pip_executable} list exited with status {completed.returncode}: "
            f"{_last_line(completed.stderr)}"
        )

    try:
        entries = json.loads(completed.stdout)
    except json.JSONDecodeError as e:
        raise DependencyToolError(f"Malformed {pip_executable} list output: {e}")

    if not isinstance(entries, list):
        raise DependencyToolError(f"Malformed {pip_executable} list output: expected a list")

    records = []
    seen = set()
    for entry in entries:
        name = entry.get("name") if isinstance(entry, dict) else None
        if not isinstance(name, str) or not name.strip():
            raise DependencyToolError(
                f"Malformed {pip_executable} list output: entry without a name: {entry!r}"
            )
        if name in seen:
            raise DependencyToolError(f"Dependency {name} listed more than once")
        seen.add(name)
        records.append(DependencyRecord(name=name))

    log_dependencies_loaded(str(root), len(records))
    return records


def normalize_name(name: str) -> str:
    """Normalize a project name the way dist-info directory names are."""
    return re.sub(r"[-_.]+", "_", name).lower()


def _dist_info_dirs(vendor_root: Path, name: str) -> List[Path]:
    wanted = normalize_name(name)
    return [
        path
        for path in sorted(vendor_root.glob("*.dist-info"))
        if path.is_dir() and normalize_name(path.name.split("-", 1)[0]) == wanted
    ]


def find_license_file(
    vendor_root: Path, name: str, patterns: Sequence[str] = ("LICENSE*",)
) -> Optional[Path]:
    """
    Pick the license file of a vendored dependency.

    Candidates come from the vendored source tree vendor_root/name and from
    the dependency's dist-info directory, including its licenses/ folder.
    A file named exactly LICENSE wins; otherwise the lexically first path.
    """
    search_dirs = [vendor_root / name]
    for dist_info in _dist_info_dirs(vendor_root, name):
        search_dirs.extend([dist_info, dist_info / "licenses"])

    candidates = set()
    for directory in search_dirs:
        if not directory.is_dir():
            continue
        for pattern in patterns:
            candidates.update(p for p in directory.glob(pattern) if p.is_file())

    if not candidates:
        return None

    ordered = sorted(candidates)
    for candidate in ordered:
        if candidate.name == PREFERRED_LICENSE_NAME:
            return candidate
    return ordered[0]


def locate_licenses(
    records: Sequence[DependencyRecord],
    vendor_root: Path,
    patterns: Sequence[str] = ("LICENSE*",),
) -> None:
    """Fill in license_path of every record. Missing files stay None."""
    for record in records:
        record.license_path = find_license_file(vendor_root, record.name, patterns)
        log_license_located(
            record.name, str(record.license_path) if record.license_path else None
        )


def _is_test_module(path: Path) -> bool:
    return (
        path.name == "conftest.py"
        or path.name.startswith("test_")
        or path.stem.endswith("_test")
    )


def detect_target_package(directory: Path, exclude: Optional[Path] = None) -> str:
    """
    Name of the package the generated module will belong to.

    Every non-test module in directory must parse; the generated output
    file itself (exclude) is ignored.

    Raises:
        TargetModuleError: If the directory holds no usable Python source
    """
    directory = directory.resolve()
    excluded = exclude.resolve() if exclude is not None else None

    modules = []
    for path in sorted(directory.glob("*.py")):
        if _is_test_module(path) or path.resolve() == excluded:
            continue
        try:
            ast.parse(path.read_bytes(), filename=str(path))
        except (SyntaxError, ValueError, OSError) as e:
            raise TargetModuleError(f"Failed to parse current package: {path.name}: {e}")
        modules.append(path)

    if not modules:
        raise TargetModuleError(f"Could not determine target package in {directory}")

    package_name = directory.name
    if not package_name.isidentifier():
        raise TargetModuleError(
            f"Could not determine target package: {package_name!r} is not a valid package name"
        )
    return package_name
