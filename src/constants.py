"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_WARNINGS = 3
    RESOLUTION_ERROR = 4
    INTEGRITY_ERROR = 5
    LOCKED = 6
    INSTALL_FAILED = 7


class DependencyKind(Enum):
    """Kinds of dependency edges a manifest can declare.

    Args:
        Enum (string): Dependency kinds.
    """

    RUNTIME = "runtime"
    DEV = "dev"


class ChecksumAlgorithms(Enum):
    """Digest algorithms accepted in lockfile checksums.

    Args:
        Enum (string): hashlib algorithm names.
    """

    SHA256 = "sha256"
    SHA512 = "sha512"
    BLAKE2B = "blake2b"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL = "https://rocks.rockyard.dev/api/v1"
    MANIFEST_FILE = "package.yaml"
    WORKSPACE_FILE = "workspace.yaml"
    LOCKFILE_NAME = "rockyard.lock"
    LOCKFILE_FORMAT_VERSION = 1
    INSTALL_DIR = "lua_modules"
    STATE_DIR = ".rockyard"
    STORE_SUBDIR = "store"
    LOCK_FILE_NAME = "install.lock"
    DEFAULT_WORKSPACE_PATTERNS = ["packages/*", "apps/*"]
    WORKSPACE_MAX_DEPTH = 3
    RESOLVER_MAX_ITERATIONS = 100
    DEFAULT_CHECKSUM_ALGORITHM = ChecksumAlgorithms.SHA256.value
    SUPPORTED_CHECKSUM_ALGORITHMS = [
        ChecksumAlgorithms.SHA256.value,
        ChecksumAlgorithms.SHA512.value,
        ChecksumAlgorithms.BLAKE2B.value,
    ]
    MAX_CONCURRENT_INSTALLS = 10
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_PREFIX = "ROCKYARD_"
    ENV_LOG_LEVEL = "ROCKYARD_LOG_LEVEL"
    ENV_CONFIG = "ROCKYARD_CONFIG"
    USER_AGENT = "rockyard/0.4"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    CONFIG_SEARCH_PATHS = [
        ".rockyard.yaml",
        "~/.config/rockyard/config.yaml",
    ]
