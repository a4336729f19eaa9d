import json

import pytest

from edgeinstall.adapters.registry_fs import load_registry
from edgeinstall.internal.config import Settings
from edgeinstall.kernel.platform import PlatformKey, RawPlatformInputs
from edgeinstall.kernel.resolver import Resolver

from tests.builders import SPARSE_FALLBACK_URL, V61, build_tarball, build_wheel


# --- Registry fixtures ---

@pytest.fixture
def registry_data():
    return {
        "schema_version": 1,
        "artifacts": {
            "511": {
                "package": "fakelib",
                "format": "wheel",
                "version": "2.0.0+nv23.05",
                "published_python_tags": ["cp38"],
                "locations": [
                    "https://downloads.example.com/jp/v511/fakelib-2.0.0+nv23.05-{python_tag}-{python_tag}-linux_aarch64.whl"
                ],
                "verify": {"module": "fakelib", "accelerator": "cuda.is_available"},
            },
            "61": {
                "package": "fakelib",
                "description": "fake tensor library for toolkit 61",
                "format": "wheel",
                "version": V61,
                "published_python_tags": ["cp310"],
                "prerequisites": ["sparse"],
                "companions": ["numpy"],
                "locations": [
                    f"https://downloads.example.com/jp/v61/fakelib-{V61}-{{python_tag}}-{{python_tag}}-linux_aarch64.whl"
                ],
                "verify": {"module": "fakelib", "accelerator": "cuda.is_available"},
            },
            "62": {
                "package": "fakelib",
                "format": "wheel",
                "prerequisites": ["sparse"],
                "notice": "nothing published for 62 yet",
                "locations": [],
                "verify": {"module": "fakelib"},
            },
        },
        "components": {
            "sparse": {
                "package": "sparse",
                "format": "tar",
                "layout": {"include": "include", "lib": "lib64"},
                "refresh_cache": True,
                "locations": [
                    {"uri": "https://downloads.example.com/sparse/linux-{cpu_arch}/sparse-{cpu_arch}-0.7.1.0-archive.tar.xz", "version": "0.7.1.0"},
                    {"uri": SPARSE_FALLBACK_URL, "version": "0.5.2.1"},
                ],
                "verify": {"files": ["lib64/libcusparseLt.so*", "include/cusparseLt.h"]},
            }
        },
    }


@pytest.fixture
def registry_path(tmp_path, registry_data):
    path = tmp_path / "artifacts.json"
    path.write_text(json.dumps(registry_data))
    return path


@pytest.fixture
def resolver(registry_path):
    return Resolver(load_registry(registry_path))


@pytest.fixture
def key61():
    return PlatformKey(os_family="linux", cpu_arch="aarch64", toolkit_version="61", runtime_version="cp310")


@pytest.fixture
def raw61():
    return RawPlatformInputs(os_family="Linux", cpu_arch="aarch64", toolkit_version="61", runtime_version="3.10")


@pytest.fixture
def settings(tmp_path, registry_path):
    return Settings(
        registry_path=registry_path,
        workspace_root=tmp_path / "workspaces",
        retries=3,
        retry_delay=0,
        refresh_cache=True,
        cache_refresh_command=["true"],
    )


@pytest.fixture
def wheel_bytes(tmp_path):
    return build_wheel(tmp_path / "built.whl").read_bytes()


@pytest.fixture
def tarball_bytes(tmp_path):
    return build_tarball(tmp_path / "built.tar.xz").read_bytes()
