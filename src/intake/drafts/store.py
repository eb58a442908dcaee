import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import aiofiles
from pydantic import ValidationError

from intake.drafts.record import DraftRecord
from intake.errors import PersistenceError

logger = logging.getLogger(__name__)


class DraftStore(ABC):
    """Abstract base class for draft persistence backends."""

    @abstractmethod
    async def write(self, content: str) -> None:
        """Persist the serialized draft, replacing any previous one."""
        pass

    @abstractmethod
    async def read(self) -> Optional[str]:
        """Return the serialized draft, or None if nothing was saved."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    async def save(self, record: DraftRecord) -> None:
        await self.write(record.model_dump_json())

    async def load(self) -> Optional[DraftRecord]:
        content = await self.read()
        if not content:
            return None
        try:
            return DraftRecord.model_validate_json(content)
        except ValidationError as e:
            raise PersistenceError(f"Saved draft is invalid: {e}") from e


class InMemoryDraftStore(DraftStore):
    def __init__(self):
        self.content: Optional[str] = None

    async def write(self, content: str) -> None:
        self.content = content

    async def read(self) -> Optional[str]:
        return self.content

    async def clear(self) -> None:
        self.content = None


class JsonFileDraftStore(DraftStore):
    """Keeps the draft in a single JSON file, replaced atomically on each save."""

    def __init__(self, path: str):
        self.path = Path(path)

    async def write(self, content: str) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(content)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Failed to write draft {self.path}: {e}") from e
        logger.debug(f"Draft saved to {self.path}")

    async def read(self) -> Optional[str]:
        if not self.path.is_file():
            return None
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                content = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Failed to read draft {self.path}: {e}") from e
        return content

    async def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to delete draft {self.path}: {e}") from e
