#!/usr/bin/env python3
import json
import logging
from json import JSONDecodeError
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Union

from cloudman.settings import LOGGER_NAME, VARIABLES_PATH

log = logging.getLogger(LOGGER_NAME)

PathLike = Union[str, Path]


class ConfigStoreError(Exception):
    def __init__(self, message: str, path: Optional[PathLike] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class ConfigFileMissing(ConfigStoreError):
    pass


class ConfigParseError(ConfigStoreError):
    pass


class ConfigWriteError(ConfigStoreError):
    pass


class _Absent:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


# Returned by get() for keys that were never set
ABSENT = _Absent()


class ConfigStore:
    """
    Process-wide key/value state backed by a JSON file.

    The values live in ``self.data``; nothing else on the object is ever
    written to disk. Mutations stay in memory until save() is called.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None, path: Optional[PathLike] = None):
        self.data: Dict[str, Any] = dict(data or {})
        self.path = Path(path) if path is not None else None

    @classmethod
    def load(cls, path: PathLike) -> "ConfigStore":
        path = Path(path)
        if not path.exists():
            raise ConfigFileMissing(f"File not found: {path}", path)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigParseError(f"could not read {path}: {exc}", path) from exc
        try:
            data = json.loads(raw)
        except JSONDecodeError as exc:
            raise ConfigParseError(f"{path} is not valid JSON: {exc}", path) from exc
        if not isinstance(data, dict):
            raise ConfigParseError(f"{path} must hold a JSON object, got {type(data).__name__}", path)
        log.info("variables loaded from %s (%d keys)", path, len(data))
        return cls(data, path)

    def get(self, key: str, default: Any = ABSENT) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def update(self, values: Mapping[str, Any]) -> None:
        self.data.update(values)

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.data)

    def save(self, path: Optional[PathLike] = None) -> Path:
        target = Path(path) if path is not None else self.path
        if target is None:
            raise ConfigWriteError("no path to save variables to")
        try:
            payload = json.dumps(self.data, indent=2)
        except (TypeError, ValueError) as exc:
            raise ConfigWriteError(f"variables are not JSON serializable: {exc}", target) from exc
        try:
            if target.parent and not target.parent.exists():
                target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(payload + "\n", encoding="utf-8")
        except OSError as exc:
            log.error("could not write %s: %s", target, exc)
            raise ConfigWriteError(f"could not write {target}: {exc}", target) from exc
        log.info("variables saved to %s", target)
        return target

    def __contains__(self, key: object) -> bool:
        return key in self.data

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"ConfigStore(path={self.path!s}, keys={len(self.data)})"


# ---------------------------
# Call-site policies
# ---------------------------

def load_or_empty(path: PathLike = VARIABLES_PATH) -> ConfigStore:
    """Start with an empty store when the file is missing or broken."""
    try:
        return ConfigStore.load(path)
    except ConfigFileMissing as exc:
        log.warning("%s; starting with empty variables", exc)
        print(f"(warning) {exc}; starting with empty variables")
    except ConfigParseError as exc:
        log.error("%s; starting with empty variables", exc)
        print(f"(warning) {exc}; starting with empty variables")
    return ConfigStore(path=path)


def load_or_exit(path: PathLike = VARIABLES_PATH) -> ConfigStore:
    """
    Terminate with status 1 when the variables file does not exist or cannot be parsed.
    Callers of this policy save back to the file, so an unreadable one is never replaced.
    """
    try:
        return ConfigStore.load(path)
    except ConfigFileMissing as exc:
        log.error("%s; cannot continue", exc)
        print(f"variables file not found: {exc.path}")
        raise SystemExit(1) from exc
    except ConfigParseError as exc:
        log.error("%s; cannot continue", exc)
        print(f"variables file is unreadable, fix it first: {exc}")
        raise SystemExit(1) from exc
