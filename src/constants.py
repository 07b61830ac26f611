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


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    SUPPORTED_MODES = ["aligned", "explicit"]
    DEFAULT_MODE = "aligned"

    PROJECT_FILE_PATTERN = "*.csproj"
    ASSETS_DIR = "obj"
    ASSETS_FILE = "project.assets.json"
    CONFIG_FILE_NAMES = ["app.config", "web.config"]
    DEFAULT_CONFIG_FILE = "app.config"

    ASM_V1_NAMESPACE = "urn:schemas-microsoft-com:asm.v1"
    REDIRECT_LOWER_BOUND = "0.0.0.0"
    NEUTRAL_CULTURE = "neutral"

    NUGET_COMMAND = "nuget"
    NUGET_TIMEOUT_SEC = 300
    NUGET_VERBOSITY = "detailed"
    NUGET_EXTRA_ARGS: list = []
    SCRATCH_PREFIX = "bindalign-"

    CHECKOUT_TOOL = None
    CHECKOUT_BATCH_SIZE = 100
    CHECKOUT_TIMEOUT_SEC = 300
    RESOLVER_MAX_WORKERS = 1

    REGISTRY_URL_NUGET_V3 = "https://api.nuget.org/v3/index.json"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_CACHE_TTL_SEC = 300

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "BINDALIGN_LOG_LEVEL"
    ENV_LOG_FMT = "BINDALIGN_LOG_FMT"
    ENV_CONFIG = "BINDALIGN_CONFIG"
    DEFAULT_CONFIG_LOCATIONS = ["bindalign.yml", "bindalign.yaml"]
