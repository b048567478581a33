"""
Persistent client-side key/value storage for cached boundaries.

Two stores share one small interface modelled on browser localStorage:
``MemoryStore`` for tests and throwaway sessions, ``FileStore`` for a cache
directory that survives restarts. Values are JSON-serializable objects.
"""

import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """localStorage-like store. Implementations may raise OSError on I/O."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set_item(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        ...


class MemoryStore(KeyValueStore):
    """Dict-backed store. Values are JSON round-tripped like a real store."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[Any]:
        raw = self._items.get(key)
        return None if raw is None else json.loads(raw)

    def set_item(self, key: str, value: Any) -> None:
        self._items[key] = json.dumps(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items.keys())


_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_.\-]')


class FileStore(KeyValueStore):
    """
    One JSON document per key inside a cache directory.

    Keys are made filesystem-safe by replacing unsafe characters; the original
    key is stored alongside the value so ``keys()`` reports it unchanged.
    Writes go to a temp file that atomically replaces the target.
    """

    SUFFIX = '.json'

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_CHARS.sub('_', key)}{self.SUFFIX}"

    def get_item(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            document = json.load(f)
        if not isinstance(document, dict) or document.get('key') != key:
            return None
        return document.get('value')

    def set_item(self, key: str, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump({'key': key, 'value': value}, f)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()

    def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        found = []
        for path in sorted(self.directory.glob(f"*{self.SUFFIX}")):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    document = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable cache file {path.name}: {e}")
                continue
            if isinstance(document, dict) and isinstance(document.get('key'), str):
                found.append(document['key'])
        return found
