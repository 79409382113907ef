"""
Flat-file JSON document store
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from app.models import DOCUMENTS

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base class for storage failures that must reach the caller"""


class DocumentCorruptedError(StorageError):
    """A document file exists but cannot be decoded"""

    def __init__(self, name: str, path: Path, reason: str):
        super().__init__(f"Document '{name}' at {path} is unreadable: {reason}")
        self.name = name
        self.path = path
        self.reason = reason


class JsonStore:
    """Whole-document read/replace over one JSON file per document name.

    A missing file reads as an empty document. A file that exists but does not
    parse raises DocumentCorruptedError in strict mode; with strict=False it is
    logged and read as empty.
    """

    def __init__(self, data_dir: Union[str, Path], names: Iterable[str] = DOCUMENTS, strict: bool = True):
        self.data_dir = Path(data_dir)
        self.names: List[str] = list(names)
        self.strict = strict

    def path(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def initialize(self) -> List[str]:
        """Create the data directory and any missing document"""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        created = []
        for name in self.names:
            target = self.path(name)
            if not target.exists():
                self._write_file(target, {})
                created.append(name)
                logger.info(f"✅ Created: {target.name}")
        return created

    async def read(self, name: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._read_sync, name)

    async def write(self, name: str, document: Dict[str, Any]) -> bool:
        return await asyncio.to_thread(self._write_sync, name, document)

    def _read_sync(self, name: str) -> Dict[str, Any]:
        target = self.path(name)
        try:
            with target.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            if self.strict:
                logger.error(f"Error reading {target}: {e}")
                raise DocumentCorruptedError(name, target, str(e)) from e
            logger.error(f"Error reading {target}, treating as empty: {e}")
            return {}
        if not isinstance(data, dict):
            if self.strict:
                raise DocumentCorruptedError(name, target, f"expected an object, got {type(data).__name__}")
            logger.error(f"Error reading {target}: not a JSON object, treating as empty")
            return {}
        return data

    def _write_sync(self, name: str, document: Dict[str, Any]) -> bool:
        target = self.path(name)
        try:
            self._write_file(target, document)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error writing {target}: {e}")
            return False

    @staticmethod
    def _write_file(target: Path, document: Dict[str, Any]) -> None:
        payload = json.dumps(document, indent=2, ensure_ascii=False)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
