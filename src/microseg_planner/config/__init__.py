"""Per-connection configuration store."""

from .store import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_EXCLUDE_PATTERNS,
    ConfigState,
    ConfigStore,
    MemoryConfigBackend,
    MicrosegConfig,
    YamlConfigBackend,
)

__all__ = [
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_EXCLUDE_PATTERNS",
    "ConfigState",
    "ConfigStore",
    "MemoryConfigBackend",
    "MicrosegConfig",
    "YamlConfigBackend",
]
