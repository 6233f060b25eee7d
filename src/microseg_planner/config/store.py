"""
Per-connection micro-segmentation configuration.

Each connection owns one MicrosegConfig. It is loaded on first use,
falls back to defaults when nothing usable is stored, and is persisted
in full after every mutation.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from ..analysis.gateway import MAX_OFFSET, GatewayMode, gateway_offset, validate_offset
from ..errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = "~/.config/microseg-planner"

# Infrastructure networks that should not be micro-segmented
DEFAULT_EXCLUDE_PATTERNS = (
    "ceph",
    "corosync",
    "migration",
    "backup",
    "cluster",
    "storage",
    "replication",
)


@dataclass(frozen=True)
class MicrosegConfig:
    """Operator settings for one connection."""
    gateway_mode: GatewayMode = GatewayMode.LAST
    custom_offset: int = MAX_OFFSET  # only used when gateway_mode is custom
    create_gateways: bool = True
    create_base_sgs: bool = True
    exclude_patterns: tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    show_excluded: bool = True

    def __post_init__(self):
        try:
            object.__setattr__(self, "gateway_mode", GatewayMode(self.gateway_mode))
        except ValueError:
            raise ValidationError(f"Unknown gateway mode: {self.gateway_mode!r}") from None
        try:
            offset = validate_offset(self.custom_offset)
        except ValidationError:
            if self.gateway_mode is GatewayMode.CUSTOM:
                raise
            # Unused outside custom mode, so a bad value only resets it
            offset = MAX_OFFSET
        object.__setattr__(self, "custom_offset", offset)

    @property
    def gateway_offset(self) -> int:
        return gateway_offset(self.gateway_mode, self.custom_offset)

    def to_dict(self) -> dict[str, Any]:
        return {
            "gateway_mode": self.gateway_mode.value,
            "custom_offset": self.custom_offset,
            "create_gateways": self.create_gateways,
            "create_base_sgs": self.create_base_sgs,
            "exclude_patterns": list(self.exclude_patterns),
            "show_excluded": self.show_excluded,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MicrosegConfig:
        defaults = cls()
        patterns = data.get("exclude_patterns", defaults.exclude_patterns)
        if isinstance(patterns, str) or not isinstance(patterns, (list, tuple)):
            raise ValidationError("exclude_patterns must be a list of strings")
        return cls(
            gateway_mode=data.get("gateway_mode", defaults.gateway_mode),
            custom_offset=data.get("custom_offset", defaults.custom_offset),
            create_gateways=bool(data.get("create_gateways", defaults.create_gateways)),
            create_base_sgs=bool(data.get("create_base_sgs", defaults.create_base_sgs)),
            exclude_patterns=tuple(
                dict.fromkeys(normalize_pattern(str(p)) for p in patterns if str(p).strip())
            ),
            show_excluded=bool(data.get("show_excluded", defaults.show_excluded)),
        )


def normalize_pattern(pattern: str) -> str:
    return pattern.strip().lower()


class ConfigState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADED = "loaded"
    MUTATED = "mutated"
    PERSISTED = "persisted"


class MemoryConfigBackend:
    """Keeps serialized configs in a dict."""

    def __init__(self, data: dict[str, dict[str, Any]] | None = None):
        self.data: dict[str, dict[str, Any]] = dict(data or {})

    def load(self, connection_id: str) -> dict[str, Any] | None:
        return self.data.get(connection_id)

    def save(self, connection_id: str, data: dict[str, Any]) -> None:
        self.data[connection_id] = dict(data)


class YamlConfigBackend:
    """Stores one YAML document per connection under ``directory``."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory).expanduser()

    def path_for(self, connection_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9._-]", "_", connection_id)
        return self.directory / f"{safe}.yaml"

    def load(self, connection_id: str) -> dict[str, Any] | None:
        path = self.path_for(connection_id)
        if not path.exists():
            return None
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is not None and not isinstance(data, dict):
            raise ValueError(f"{path} does not contain a mapping")
        return data

    def save(self, connection_id: str, data: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(connection_id)
        tmp = path.with_suffix(".yaml.tmp")
        with open(tmp, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        tmp.replace(path)


@dataclass
class _Entry:
    config: MicrosegConfig
    state: ConfigState = ConfigState.LOADED


class ConfigStore:
    """Keyed store: connection id -> MicrosegConfig."""

    def __init__(self, backend: MemoryConfigBackend | YamlConfigBackend | None = None):
        self.backend = backend if backend is not None else MemoryConfigBackend()
        self._entries: dict[str, _Entry] = {}

    def state(self, connection_id: str) -> ConfigState:
        entry = self._entries.get(connection_id)
        return entry.state if entry else ConfigState.UNINITIALIZED

    def get(self, connection_id: str) -> MicrosegConfig:
        entry = self._entries.get(connection_id)
        if entry is None:
            entry = _Entry(config=self._load(connection_id))
            self._entries[connection_id] = entry
        return entry.config

    def _load(self, connection_id: str) -> MicrosegConfig:
        try:
            data = self.backend.load(connection_id)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Could not load config for %s, using defaults: %s", connection_id, e)
            return MicrosegConfig()

        if data is None:
            logger.debug("No stored config for %s, using defaults", connection_id)
            return MicrosegConfig()

        try:
            return MicrosegConfig.from_dict(data)
        except ValidationError as e:
            logger.warning("Stored config for %s is invalid, using defaults: %s", connection_id, e)
            return MicrosegConfig()

    def save(self, connection_id: str, config: MicrosegConfig) -> MicrosegConfig:
        """Replace the config for a connection and persist all of it."""
        entry = self._entries.setdefault(connection_id, _Entry(config=config))
        entry.config = config
        entry.state = ConfigState.MUTATED
        self.backend.save(connection_id, config.to_dict())
        entry.state = ConfigState.PERSISTED
        logger.debug("Persisted config for %s", connection_id)
        return config

    def update(self, connection_id: str, changes: dict[str, Any]) -> MicrosegConfig:
        current = self.get(connection_id)
        unknown = set(changes) - set(current.to_dict())
        if unknown:
            raise ValidationError(f"Unknown config field(s): {', '.join(sorted(unknown))}")
        merged = {**current.to_dict(), **changes}
        return self.save(connection_id, MicrosegConfig.from_dict(merged))

    # --- Exclusion patterns ---

    def add_pattern(self, connection_id: str, pattern: str) -> MicrosegConfig:
        normalized = normalize_pattern(pattern)
        if not normalized:
            raise ValidationError("Exclusion pattern must not be blank")
        current = self.get(connection_id)
        if normalized in current.exclude_patterns:
            raise ValidationError(f"Exclusion pattern already present: {normalized}")
        return self.save(
            connection_id,
            replace(current, exclude_patterns=current.exclude_patterns + (normalized,)),
        )

    def remove_pattern(self, connection_id: str, pattern: str) -> MicrosegConfig:
        pattern = normalize_pattern(pattern)
        current = self.get(connection_id)
        if pattern not in current.exclude_patterns:
            raise ValidationError(f"Exclusion pattern not found: {pattern}")
        remaining = tuple(p for p in current.exclude_patterns if p != pattern)
        return self.save(connection_id, replace(current, exclude_patterns=remaining))

    def reset_patterns(self, connection_id: str) -> MicrosegConfig:
        current = self.get(connection_id)
        return self.save(
            connection_id, replace(current, exclude_patterns=DEFAULT_EXCLUDE_PATTERNS)
        )
