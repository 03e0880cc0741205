DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_MAX_ATTEMPTS = 1
SPEC_VERSION = "1.0"
