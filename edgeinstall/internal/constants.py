APP_NAME = "edgeinstall"
ENV_PREFIX = "EDGEINSTALL_"

REGISTRY_FILE_NAME = "artifacts.json"
REGISTRY_SCHEMA_VERSION = 1

# Platform normalization
SUPPORTED_OS_FAMILIES = frozenset({"linux"})
SUPPORTED_ARCHITECTURES = frozenset({"aarch64"})
ARCH_ALIASES = {"arm64": "aarch64", "armv8": "aarch64"}
TOOLKIT_CODE_PATTERN = r"^\d{2,3}$"

# Fetching
DEFAULT_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 2.0
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_CHUNK_SIZE = 1024 * 1024

# Installing
DEFAULT_CACHE_REFRESH_COMMAND = ("ldconfig",)
DISK_SPACE_BUFFER = 1.1  # require 10% more than the artifact's unpacked size

ARTIFACT_INDEX_URL = "https://developer.download.nvidia.com/compute/redist/jp/"
