"""File-system document store for bot content (intents, entities, flows)"""

import asyncio
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Union

import structlog

from .errors import InvalidInputError, NotFoundError

logger = structlog.get_logger(__name__)

Content = Union[str, bytes]


class DocumentStore(Protocol):
    """Documents of one bot, addressed by folder and name"""

    async def read(self, folder: str, name: str) -> Optional[Content]:
        ...

    async def write(self, folder: str, name: str, content: Content):
        ...

    async def list(self, folder: str, suffix: str, exclude: Iterable[str] = ()) -> List[str]:
        ...

    async def delete(self, folder: str, name: str):
        ...


class BotDocumentStore:
    """Documents of a single bot, stored under ``<root>/<bot_id>``"""

    def __init__(self, root: Path, bot_id: str, lock: asyncio.Lock, binary_folders: Iterable[str] = ()):
        self.bot_id = bot_id
        self.root = (root / bot_id).resolve()
        self._lock = lock
        self._binary_folders = {self._normalize(f) for f in binary_folders}

    @staticmethod
    def _normalize(folder: str) -> str:
        return Path(folder).as_posix().strip("/")

    def _path(self, folder: str, name: str = "") -> Path:
        path = (self.root / self._normalize(folder) / name).resolve()
        if not path.is_relative_to(self.root):
            raise InvalidInputError(f"Document {folder}/{name} is outside the store of bot '{self.bot_id}'")
        return path

    async def read(self, folder: str, name: str) -> Optional[Content]:
        """Read a document; ``None`` when it does not exist"""
        path = self._path(folder, name)
        binary = self._normalize(folder) in self._binary_folders
        loop = asyncio.get_running_loop()

        try:
            if binary:
                return await loop.run_in_executor(None, path.read_bytes)
            return await loop.run_in_executor(None, lambda: path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error("Document read failed", bot_id=self.bot_id, path=str(path), error=str(e))
            raise

    async def exists(self, folder: str, name: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._path(folder, name).is_file)

    async def write(self, folder: str, name: str, content: Content):
        """Create or replace a document"""
        path = self._path(folder, name)
        loop = asyncio.get_running_loop()

        def write_file():
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")

        async with self._lock:
            try:
                await loop.run_in_executor(None, write_file)
            except OSError as e:
                logger.error("Document write failed", bot_id=self.bot_id, path=str(path), error=str(e))
                raise

    async def list(self, folder: str, suffix: str, exclude: Iterable[str] = ()) -> List[str]:
        """Relative paths of the documents of ``folder`` ending with ``suffix``"""
        folder_path = self._path(folder)
        omitted = set(exclude)
        loop = asyncio.get_running_loop()

        def list_files():
            if not folder_path.is_dir():
                return []
            return sorted(p.relative_to(folder_path).as_posix() for p in folder_path.glob(f"**/*{suffix}") if p.is_file())

        paths = await loop.run_in_executor(None, list_files)
        return [p for p in paths if p not in omitted]

    async def delete(self, folder: str, name: str):
        """Delete a document; ``NotFoundError`` when it does not exist"""
        path = self._path(folder, name)
        loop = asyncio.get_running_loop()

        async with self._lock:
            try:
                await loop.run_in_executor(None, path.unlink)
            except FileNotFoundError:
                raise NotFoundError(f"Document {folder}/{name} does not exist")
            except OSError as e:
                logger.error("Document delete failed", bot_id=self.bot_id, path=str(path), error=str(e))
                raise


class FileSystemDocumentStore:
    """Document store rooted in a local directory, one sub-directory per bot"""

    def __init__(self, root: Union[str, Path], binary_folders: Iterable[str] = ()):
        self.root = Path(root)
        self.binary_folders = list(binary_folders)
        self._locks: Dict[str, asyncio.Lock] = {}
        logger.debug("Using file-system document store", root=str(self.root))

    def for_bot(self, bot_id: str) -> BotDocumentStore:
        if not bot_id or bot_id in (".", "..") or "/" in bot_id or "\\" in bot_id:
            raise InvalidInputError(f"Invalid bot id '{bot_id}'")

        # writes are serialized per bot
        lock = self._locks.setdefault(bot_id, asyncio.Lock())
        return BotDocumentStore(self.root, bot_id, lock, self.binary_folders)
