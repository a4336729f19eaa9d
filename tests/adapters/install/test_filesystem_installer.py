import io
import os
import tarfile
import zipfile
from collections import namedtuple

import pytest

from edgeinstall.adapters.installer_fs import (
    FileSystemInstaller,
    LinkerCacheRefresher,
    detect_format,
    wheel_requirements,
    wheel_version,
)
from edgeinstall.kernel.artifacts import ArtifactCandidate, ArtifactFormat, FetchResult
from edgeinstall.kernel.errors import InstallationError
from tests.builders import V61, build_tarball, build_wheel, tree_snapshot
from tests.kernel.mocks import MockCacheRefresher

LAYOUT = {"include": "include", "lib": "lib64"}

# --- Helpers ---

def _fetched(path, fmt, version=None):
    candidate = ArtifactCandidate(
        location_uri=f"https://downloads.example.com/{path.name}",
        expected_format=fmt,
        priority=1,
        version=version,
    )
    return FetchResult(candidate=candidate, success=True, local_path=path, attempts=1)


@pytest.fixture
def wheel(tmp_path):
    return build_wheel(tmp_path / "fakelib-1.0-cp310-cp310-linux_aarch64.whl")


@pytest.fixture
def tarball(tmp_path):
    return build_tarball(tmp_path / "sparse-archive.tar.xz")


@pytest.fixture
def destination(tmp_path):
    return tmp_path / "dest"


# --- Format detection ---

def test_detect_format_reads_content(wheel, tarball, tmp_path):
    plain_zip = tmp_path / "plain.zip"
    with zipfile.ZipFile(plain_zip, "w") as zf:
        zf.writestr("readme.txt", "hi")
    junk = tmp_path / "junk.whl"
    junk.write_bytes(b"<html>404</html>")

    assert detect_format(wheel) is ArtifactFormat.WHEEL
    assert detect_format(tarball) is ArtifactFormat.TAR
    assert detect_format(plain_zip) is None
    assert detect_format(junk) is None


def test_wheel_version_comes_from_metadata(wheel):
    assert wheel_version(wheel) == V61


def test_wheel_requirements_skip_extras(tmp_path):
    wheel = build_wheel(
        tmp_path / "deps.whl",
        requires=["filelock", "typing-extensions>=4.8.0", 'sympy; python_version >= "3.9"', 'opt-einsum>=3.3; extra == "opt-einsum"'],
    )
    assert wheel_requirements(wheel) == ["filelock", "typing-extensions>=4.8.0", "sympy"]


def test_wheel_dependencies_are_listed_in_the_notes(tmp_path, destination):
    wheel = build_wheel(tmp_path / "deps.whl", requires=["filelock", "networkx"])
    installer = FileSystemInstaller(notes=("companion requirement: numpy",))

    report = installer.install(_fetched(wheel, ArtifactFormat.WHEEL), destination)

    assert report.notes == (
        "companion requirement: numpy",
        "requires: filelock, networkx (install them with your package manager)",
    )


def test_wheel_without_dependencies_adds_no_note(wheel, destination):
    report = FileSystemInstaller().install(_fetched(wheel, ArtifactFormat.WHEEL), destination)
    assert report.notes == ()


# --- Wheels ---

def test_wheel_is_unpacked_in_site_packages_layout(wheel, destination):
    report = FileSystemInstaller().install(_fetched(wheel, ArtifactFormat.WHEEL, "1.0"), destination)

    assert (destination / "fakelib" / "__init__.py").is_file()
    assert (destination / "fakelib" / "_C" / "placeholder.txt").is_file()
    assert (destination / f"fakelib-{V61}.dist-info" / "METADATA").is_file()
    assert report.installed_version == "1.0"
    assert report.destination_path == destination
    assert report.cache_refreshed is False
    assert report.verified is False
    assert report.details["format"] == "wheel"
    assert destination / "fakelib" / "__init__.py" in report.installed_files


def test_wheel_version_falls_back_to_metadata(wheel, destination):
    report = FileSystemInstaller().install(_fetched(wheel, ArtifactFormat.WHEEL), destination)
    assert report.installed_version == V61


def test_wheel_data_purelib_goes_to_the_root(tmp_path, destination):
    path = tmp_path / "extra-1.0-py3-none-any.whl"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("extra-1.0.dist-info/WHEEL", "Wheel-Version: 1.0\n")
        zf.writestr("extra-1.0.data/purelib/extra_mod.py", "X = 1\n")
        zf.writestr("extra-1.0.data/scripts/extra-cli", "#!/bin/sh\n")

    FileSystemInstaller().install(_fetched(path, ArtifactFormat.WHEEL, "1.0"), destination)

    assert (destination / "extra_mod.py").read_text() == "X = 1\n"
    assert not (destination / "extra-1.0.data").exists()


def test_reinstall_yields_the_same_tree(wheel, destination):
    installer = FileSystemInstaller()
    installer.install(_fetched(wheel, ArtifactFormat.WHEEL), destination)
    first = tree_snapshot(destination)
    installer.install(_fetched(wheel, ArtifactFormat.WHEEL), destination)
    assert tree_snapshot(destination) == first


# --- Archives ---

def test_tarball_is_unpacked_through_the_layout(tarball, destination):
    report = FileSystemInstaller(layout=LAYOUT).install(_fetched(tarball, ArtifactFormat.TAR, "0.7.1.0"), destination)

    assert (destination / "include" / "cusparseLt.h").is_file()
    assert (destination / "lib64" / "libcusparseLt.so.0.7.1.0").is_file()
    assert os.readlink(destination / "lib64" / "libcusparseLt.so") == "libcusparseLt.so.0"
    assert (destination / "lib64" / "libcusparseLt.so").resolve().name == "libcusparseLt.so.0.7.1.0"
    # directories outside the layout are not placed
    assert not (destination / "LICENSE.txt").exists()
    assert not (destination / "lib").exists()
    assert report.installed_version == "0.7.1.0"
    assert report.details["format"] == "tar"


def test_reinstalling_a_tarball_is_idempotent(tarball, destination):
    installer = FileSystemInstaller(layout=LAYOUT)
    installer.install(_fetched(tarball, ArtifactFormat.TAR), destination)
    first = tree_snapshot(destination)
    installer.install(_fetched(tarball, ArtifactFormat.TAR), destination)
    assert tree_snapshot(destination) == first


def test_symlink_leaving_destination_is_refused(tmp_path, destination):
    path = tmp_path / "evil.tar"
    with tarfile.open(path, "w") as tf:
        data = b"ok"
        info = tarfile.TarInfo("pkg/lib/libok.so")
        info.size = len(data)
        tf.addfile(info, io.BytesIO(data))
        link = tarfile.TarInfo("pkg/lib/libevil.so")
        link.type = tarfile.SYMTYPE
        link.linkname = "../../../../etc/passwd"
        tf.addfile(link)

    with pytest.raises(InstallationError, match="symlink"):
        FileSystemInstaller(layout=LAYOUT).install(_fetched(path, ArtifactFormat.TAR), destination)

    assert list(destination.iterdir()) == []


def test_path_traversal_member_is_refused(tmp_path, destination):
    path = tmp_path / "evil-1.0-py3-none-any.whl"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("evil-1.0.dist-info/WHEEL", "Wheel-Version: 1.0\n")
        zf.writestr("../escaped.py", "boom")

    with pytest.raises(InstallationError, match="unsafe"):
        FileSystemInstaller().install(_fetched(path, ArtifactFormat.WHEEL), destination)

    assert not (tmp_path / "escaped.py").exists()


# --- Failures ---

def test_format_mismatch_touches_nothing(wheel, destination):
    with pytest.raises(InstallationError, match="Format mismatch"):
        FileSystemInstaller().install(_fetched(wheel, ArtifactFormat.TAR), destination)
    assert not destination.exists()


def test_unwritable_destination_is_reported(wheel, destination, mocker):
    mocker.patch("edgeinstall.adapters.installer_fs.os.access", return_value=False)
    with pytest.raises(InstallationError, match="not writable") as exc_info:
        FileSystemInstaller().install(_fetched(wheel, ArtifactFormat.WHEEL), destination)
    assert exc_info.value.destination == destination


def test_insufficient_disk_space_is_reported(wheel, destination, mocker):
    usage = namedtuple("usage", "total used free")
    mocker.patch("edgeinstall.adapters.installer_fs.psutil.disk_usage", return_value=usage(100, 100, 0))
    with pytest.raises(InstallationError, match="Not enough disk space"):
        FileSystemInstaller().install(_fetched(wheel, ArtifactFormat.WHEEL), destination)
    assert list(destination.iterdir()) == []


# --- Cache refresh ---

def test_cache_refresh_runs_after_placement(tarball, destination):
    refresher = MockCacheRefresher()
    report = FileSystemInstaller(cache_refresher=refresher, layout=LAYOUT).install(
        _fetched(tarball, ArtifactFormat.TAR), destination
    )
    assert refresher.refreshed == [destination]
    assert report.cache_refreshed is True


def test_failed_cache_refresh_rolls_back_new_files(tarball, destination):
    installer = FileSystemInstaller(cache_refresher=MockCacheRefresher(force_error=True), layout=LAYOUT)
    with pytest.raises(InstallationError, match="cache refresh"):
        installer.install(_fetched(tarball, ArtifactFormat.TAR), destination)
    assert list(destination.iterdir()) == []


def test_notes_are_carried_into_the_report(wheel, destination):
    installer = FileSystemInstaller(notes=["companion requirement: numpy"])
    report = installer.install(_fetched(wheel, ArtifactFormat.WHEEL), destination)
    assert report.notes == ("companion requirement: numpy",)


def test_linker_cache_refresher_runs_the_command(tmp_path):
    LinkerCacheRefresher(["true"]).refresh(tmp_path)


def test_linker_cache_refresher_reports_failure(tmp_path):
    with pytest.raises(InstallationError, match="Cache refresh failed"):
        LinkerCacheRefresher(["false"]).refresh(tmp_path)


def test_linker_cache_refresher_reports_missing_command(tmp_path):
    with pytest.raises(InstallationError, match="not found"):
        LinkerCacheRefresher(["edgeinstall-no-such-ldconfig"]).refresh(tmp_path)
