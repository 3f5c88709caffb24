import stat
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple
import logging

import aiofiles
import aiofiles.os
from fastapi import UploadFile

import config
from logger_config import setup_logger, structured_log
from models import FileDetails


class StorageError(Exception):
    """Filesystem failure not attributable to a missing target."""


class FileNotFoundInStorage(StorageError):
    def __init__(self, filename: str):
        super().__init__(f"File {filename} not found")
        self.filename = filename


class InvalidFilename(StorageError):
    def __init__(self, filename: str):
        super().__init__(f"Invalid filename: {filename!r}")
        self.filename = filename


class UploadTooLarge(StorageError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"Upload of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


class StorageManager:
    def __init__(
        self,
        data_dir: Path,
        temp_dir: Path,
        max_upload_size: Optional[int] = None,
        chunk_size: int = config.CHUNK_SIZE,
        logger: Optional[logging.Logger] = None,
    ):
        self.data_dir = Path(data_dir)
        self.temp_dir = Path(temp_dir)
        self.max_upload_size = max_upload_size
        self.chunk_size = chunk_size
        self.logger = logger or setup_logger()

    async def initialize(self):
        """Create the storage directories and clear leftovers from interrupted uploads."""
        self.logger.info("Initializing storage manager...")

        await aiofiles.os.makedirs(self.data_dir, exist_ok=True)
        await aiofiles.os.makedirs(self.temp_dir, exist_ok=True)
        self.logger.debug(f"Storage directories created/verified: {self.data_dir}, {self.temp_dir}")

        files_removed = 0
        for name in await aiofiles.os.listdir(self.temp_dir):
            path = self.temp_dir / name
            if await aiofiles.os.path.isfile(path):
                await aiofiles.os.unlink(path)
                files_removed += 1
        self.logger.info(f"Cleaned temporary directory, removed {files_removed} files")

    def resolve_path(self, filename: str) -> Path:
        """Map a client-supplied filename to a path directly under the storage root.

        Raises:
            InvalidFilename: if the name is empty, contains a path separator,
                or resolves (through ``..`` or a symlink) outside the root.
        """
        if (
            not filename
            or filename in (".", "..")
            or "/" in filename
            or "\\" in filename
            or "\x00" in filename
        ):
            raise InvalidFilename(filename)

        root = self.data_dir.resolve()
        path = (root / filename).resolve()
        if path.parent != root:
            raise InvalidFilename(filename)
        return path

    async def save_upload(self, upload: UploadFile) -> Tuple[str, int]:
        """Copy an uploaded payload into storage under a freshly generated name.

        The payload is written to the temp directory first and renamed into
        the storage root once complete, so a partially written file is never
        visible to readers.

        Args:
            upload: The uploaded file as received by the request handler.

        Returns:
            The assigned filename and the number of bytes stored.
        """
        upload.file.seek(0, 2)  # Seek to end
        size = upload.file.tell()
        await upload.seek(0)

        if self.max_upload_size is not None and size > self.max_upload_size:
            raise UploadTooLarge(size, self.max_upload_size)

        filename = uuid.uuid4().hex
        temp_path = self.temp_dir / f"{filename}.part"
        final_path = self.data_dir / filename

        try:
            written = 0
            # "xb" fails instead of clobbering if the name is somehow taken
            async with aiofiles.open(temp_path, "xb") as f:
                while chunk := await upload.read(self.chunk_size):
                    written += len(chunk)
                    await f.write(chunk)
            await aiofiles.os.rename(temp_path, final_path)
        except OSError as e:
            if await aiofiles.os.path.exists(temp_path):
                await aiofiles.os.unlink(temp_path)
            raise StorageError(f"Unable to store upload: {e}") from e

        self.logger.debug(structured_log(
            "File stored",
            event="file_stored",
            filename=filename,
            size=written,
        ))
        return filename, written

    async def list_files(self) -> List[str]:
        try:
            return await aiofiles.os.listdir(self.data_dir)
        except OSError as e:
            raise StorageError(f"Unable to read storage directory: {e}") from e

    async def get_details(self, filename: str) -> FileDetails:
        path = self.resolve_path(filename)
        try:
            st = await aiofiles.os.stat(path)
        except FileNotFoundError as e:
            raise FileNotFoundInStorage(filename) from e
        except OSError as e:
            raise StorageError(f"Unable to stat {filename}: {e}") from e

        if not stat.S_ISREG(st.st_mode):
            raise FileNotFoundInStorage(filename)

        # Birth time is only reported on some platforms
        created = getattr(st, "st_birthtime", st.st_ctime)
        return FileDetails(
            filename=filename,
            size=st.st_size,
            created_at=datetime.fromtimestamp(created, tz=timezone.utc),
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    async def open_for_download(self, filename: str) -> AsyncIterator[bytes]:
        """Open a stored file and return an iterator over its content.

        The file is opened before returning so a missing file is reported
        here rather than halfway through the response.
        """
        path = self.resolve_path(filename)
        try:
            f = await aiofiles.open(path, "rb")
        except OSError as e:
            # Missing and unreadable files look the same to the client
            self.logger.debug(f"Unable to open {filename}: {e}")
            raise FileNotFoundInStorage(filename) from e

        async def file_iterator():
            try:
                while chunk := await f.read(self.chunk_size):
                    yield chunk
            finally:
                await f.close()

        return file_iterator()

    async def delete_file(self, filename: str):
        path = self.resolve_path(filename)
        try:
            await aiofiles.os.unlink(path)
        except (FileNotFoundError, IsADirectoryError) as e:
            raise FileNotFoundInStorage(filename) from e
        except OSError as e:
            raise StorageError(f"Unable to delete {filename}: {e}") from e

        self.logger.info(structured_log(
            "File deleted",
            event="file_deleted",
            filename=filename,
        ))
