"""
Discovery tests for licensed.
Tests project root search, the pip dependency source, license location and
target package detection.
"""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from licensed.dependency import DependencyRecord
from licensed.discovery import (
    detect_target_package,
    find_license_file,
    find_project_root,
    get_dependencies,
    locate_licenses,
    normalize_name,
)
from licensed.error_handling import (
    DependencyToolError,
    ErrorCategory,
    ProjectRootNotFound,
    TargetModuleError,
)


class TestProjectRoot:
    """Test the upward search for the vendor directory."""

    def test_finds_root_from_subdirectory(self, vendored_project):
        start = vendored_project / "app"
        assert find_project_root(start) == vendored_project.resolve()

    def test_root_itself(self, vendored_project):
        assert find_project_root(vendored_project) == vendored_project.resolve()

    def test_custom_vendor_dir(self, temp_dir):
        (temp_dir / "third_party").mkdir()
        nested = temp_dir / "src" / "pkg"
        nested.mkdir(parents=True)
        assert find_project_root(nested, "third_party") == temp_dir.resolve()

    def test_no_root(self, temp_dir):
        with pytest.raises(ProjectRootNotFound) as exc_info:
            find_project_root(temp_dir, "no-such-vendor-dir-anywhere")
        assert exc_info.value.category == ErrorCategory.COLLABORATOR


class TestDependencySource:
    """Test listing vendored dependencies through pip."""

    def test_lists_dependencies_in_order(self, vendored_project, fake_pip):
        run = fake_pip(["zeta", "alpha"])
        records = get_dependencies(vendored_project)

        assert [record.name for record in records] == ["zeta", "alpha"]
        assert all(record.license_path is None for record in records)

        command = run.call_args[0][0]
        assert command[:3] == ["/usr/bin/pip", "list", "--format=json"]
        assert command[-1] == str(vendored_project / "vendor")
        assert run.call_args[1]["cwd"] == vendored_project

    def test_empty_vendor_directory(self, vendored_project, fake_pip):
        fake_pip([])
        assert get_dependencies(vendored_project) == []

    def test_pip_not_installed(self, vendored_project):
        with patch("licensed.discovery.shutil.which", return_value=None):
            with pytest.raises(DependencyToolError, match="not installed"):
                get_dependencies(vendored_project)

    def test_pip_failure(self, vendored_project, fake_pip):
        fake_pip(returncode=2, stdout="", stderr="Traceback...\nERROR: bad path\n")
        with pytest.raises(DependencyToolError) as exc_info:
            get_dependencies(vendored_project)
        assert "ERROR: bad path" in str(exc_info.value)
        assert "\n" not in str(exc_info.value)

    def test_pip_timeout(self, vendored_project):
        with patch("licensed.discovery.shutil.which", return_value="/usr/bin/pip"), patch(
            "licensed.discovery.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="pip", timeout=5),
        ):
            with pytest.raises(DependencyToolError, match="timed out"):
                get_dependencies(vendored_project, timeout_seconds=5)

    @pytest.mark.parametrize(
        "stdout",
        ["not json", '{"name": "a"}', '[{"version": "1.0"}]', '[{"name": ""}]', "[1, 2]"],
    )
    def test_malformed_output(self, vendored_project, fake_pip, stdout):
        fake_pip(stdout=stdout)
        with pytest.raises(DependencyToolError, match="Malformed"):
            get_dependencies(vendored_project)

    def test_duplicate_names(self, vendored_project, fake_pip):
        fake_pip(["a", "a"])
        with pytest.raises(DependencyToolError, match="more than once"):
            get_dependencies(vendored_project)


class TestLicenseLocator:
    """Test license file selection."""

    def test_vendored_source_tree(self, vendored_project):
        vendor = vendored_project / "vendor"
        assert find_license_file(vendor, "a/b") == vendor / "a" / "b" / "LICENSE"
        assert find_license_file(vendor, "c/d") == vendor / "c" / "d" / "LICENSE.txt"

    def test_exact_license_name_wins(self, temp_dir):
        dep = temp_dir / "dep"
        dep.mkdir()
        for name in ("LICENSE-THIRD-PARTY", "LICENSE.md", "LICENSE", "COPYING"):
            (dep / name).write_text(name)
        assert find_license_file(temp_dir, "dep", ["LICENSE*", "COPYING*"]) == dep / "LICENSE"

    def test_lexical_order_without_exact_name(self, temp_dir):
        dep = temp_dir / "dep"
        dep.mkdir()
        for name in ("LICENSE.txt", "LICENSE-APACHE", "LICENSE-MIT"):
            (dep / name).write_text(name)
        assert find_license_file(temp_dir, "dep") == dep / "LICENSE-APACHE"

    def test_dist_info_directory(self, temp_dir):
        dist_info = temp_dir / "Typing_Extensions-4.9.0.dist-info"
        (dist_info / "licenses").mkdir(parents=True)
        (dist_info / "licenses" / "LICENSE").write_text("PSF")
        (temp_dir / "typing_extensions.py").write_text("")

        found = find_license_file(temp_dir, "typing-extensions")
        assert found == dist_info / "licenses" / "LICENSE"

    def test_other_dist_info_is_ignored(self, temp_dir):
        other = temp_dir / "requests_toolbelt-1.0.0.dist-info"
        other.mkdir()
        (other / "LICENSE").write_text("Apache")
        assert find_license_file(temp_dir, "requests") is None

    def test_directories_are_not_license_files(self, temp_dir):
        (temp_dir / "dep" / "LICENSES").mkdir(parents=True)
        assert find_license_file(temp_dir, "dep") is None

    def test_copying_pattern(self, temp_dir):
        (temp_dir / "dep").mkdir()
        (temp_dir / "dep" / "COPYING").write_text("GPL")
        assert find_license_file(temp_dir, "dep") is None
        assert find_license_file(temp_dir, "dep", ["LICENSE*", "COPYING*"]) == (
            temp_dir / "dep" / "COPYING"
        )

    def test_locate_enriches_records(self, vendored_project):
        records = [DependencyRecord("a/b"), DependencyRecord("missing")]
        locate_licenses(records, vendored_project / "vendor")
        assert records[0].license_path == vendored_project / "vendor" / "a" / "b" / "LICENSE"
        assert records[1].license_path is None

    @pytest.mark.parametrize(
        "name,expected",
        [("Typing-Extensions", "typing_extensions"), ("zope.interface", "zope_interface"), ("a__b", "a_b")],
    )
    def test_normalize_name(self, name, expected):
        assert normalize_name(name) == expected


class TestTargetPackage:
    """Test detection of the package the module is generated into."""

    def test_package_directory(self, vendored_project):
        assert detect_target_package(vendored_project / "app") == "app"

    def test_generated_file_is_ignored(self, temp_dir):
        pkg = temp_dir / "pkg"
        pkg.mkdir()
        generated = pkg / "licenses_generated.py"
        generated.write_text("this is not python (")
        (pkg / "core.py").write_text("x = 1\n")
        assert detect_target_package(pkg, exclude=generated) == "pkg"

    def test_only_test_modules(self, temp_dir):
        pkg = temp_dir / "pkg"
        pkg.mkdir()
        (pkg / "test_core.py").write_text("")
        (pkg / "conftest.py").write_text("")
        with pytest.raises(TargetModuleError, match="Could not determine"):
            detect_target_package(pkg)

    def test_empty_directory(self, temp_dir):
        pkg = temp_dir / "pkg"
        pkg.mkdir()
        with pytest.raises(TargetModuleError):
            detect_target_package(pkg)

    def test_unparsable_source(self, temp_dir):
        pkg = temp_dir / "pkg"
        pkg.mkdir()
        (pkg / "broken.py").write_text("def broken(:\n")
        with pytest.raises(TargetModuleError, match="Failed to parse"):
            detect_target_package(pkg)

    def test_directory_name_must_be_identifier(self, temp_dir):
        pkg = temp_dir / "my-app"
        pkg.mkdir()
        (pkg / "core.py").write_text("x = 1\n")
        with pytest.raises(TargetModuleError):
            detect_target_package(Path(pkg))
