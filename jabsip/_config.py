"""
Account settings.

A session reads its account from a key/value SettingsStore. Keys are
namespaced per session as ``"<plugin_id>/<name>"`` so several sessions can
share one store (and one settings file).
"""

from __future__ import annotations

import abc
import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ._utils import DEFAULT_PORT, logger

# Setting names
USERNAME = "username"
PASSWORD = "password"
SERVER = "server"
PORT = "port"
XML_CONSOLE = "xml_console"


@dataclass
class AccountConfig:
    """Credentials and connection options of one account."""

    username: str = ""
    password: str = ""

    # Empty server means "look the server up from the account's domain"
    server: str = ""
    port: int = DEFAULT_PORT

    xml_console: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================================
# Settings Stores
# ============================================================================


class SettingsStore(abc.ABC):
    """Abstract key/value settings storage."""

    @abc.abstractmethod
    def value(self, key: str, default: Any = None) -> Any:
        ...

    @abc.abstractmethod
    def set_value(self, key: str, value: Any) -> None:
        ...

    @abc.abstractmethod
    def remove(self, prefix: str) -> None:
        """Remove every key equal to ``prefix`` or below ``prefix/``."""
        ...

    @abc.abstractmethod
    def keys(self) -> List[str]:
        ...

    def plugin_ids(self) -> List[str]:
        """Every namespace with at least one key."""
        ids = {key.split("/", 1)[0] for key in self.keys() if "/" in key}
        return sorted(ids)

    # Account helpers

    def load_account(self, plugin_id: str) -> AccountConfig:
        """Read the account stored under ``plugin_id``."""
        port = self.value(f"{plugin_id}/{PORT}", DEFAULT_PORT)
        try:
            port = int(port)
        except (TypeError, ValueError):
            logger.warning(f"Invalid port {port!r} for {plugin_id}, using {DEFAULT_PORT}")
            port = DEFAULT_PORT

        return AccountConfig(
            username=self.value(f"{plugin_id}/{USERNAME}", "") or "",
            password=self.value(f"{plugin_id}/{PASSWORD}", "") or "",
            server=self.value(f"{plugin_id}/{SERVER}", "") or "",
            port=port,
            xml_console=_as_bool(self.value(f"{plugin_id}/{XML_CONSOLE}", False)),
        )

    def save_account(self, plugin_id: str, account: AccountConfig) -> None:
        for name, value in account.to_dict().items():
            self.set_value(f"{plugin_id}/{name}", value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


class MemorySettings(SettingsStore):
    """Settings kept in a dict, for tests and embedding."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})

    def value(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set_value(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, prefix: str) -> None:
        for key in [k for k in self._data if k == prefix or k.startswith(f"{prefix}/")]:
            del self._data[key]

    def keys(self) -> List[str]:
        return list(self._data)

    def __repr__(self) -> str:
        return f"<MemorySettings({len(self._data)} keys)>"


class JsonFileSettings(MemorySettings):
    """
    Settings persisted as a flat JSON object.

    Every change is written back immediately.

    Example:
        >>> settings = JsonFileSettings("~/.config/jabsip/settings.json")
        >>> settings.set_value("jabber-1/username", "alice@example.org")
    """

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__()
        self.path = Path(path).expanduser()
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable settings file {self.path}: {e}")
            return
        if isinstance(data, dict):
            self._data.update(data)

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding="utf-8")

    def set_value(self, key: str, value: Any) -> None:
        super().set_value(key, value)
        self._save()

    def remove(self, prefix: str) -> None:
        super().remove(prefix)
        self._save()

    def __repr__(self) -> str:
        return f"<JsonFileSettings({self.path})>"


__all__ = [
    "AccountConfig",
    "SettingsStore",
    "MemorySettings",
    "JsonFileSettings",
    "USERNAME",
    "PASSWORD",
    "SERVER",
    "PORT",
    "XML_CONSOLE",
]
