"""
Filesystem blob store for normalized logo PNGs.

Blobs live at ``<base_dir>/<SYMBOL>/<size>.png``. Writes go to a temporary
file in the same directory and are renamed into place, so readers never
see a partially written image.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Union

from ticker_logos.core.errors import NotFound, StorageError
from .models import LogoSize

log = logging.getLogger(__name__)


class BlobStore:
    """Durable PNG storage addressed by symbol and size."""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"creating logo directory {self.base_dir}: {e}") from e

    def symbol_dir(self, symbol: str) -> Path:
        return self.base_dir / symbol

    def path_for(self, symbol: str, size: LogoSize) -> Path:
        return self.symbol_dir(symbol) / f"{size.value}.png"

    def read(self, symbol: str, size: LogoSize) -> bytes:
        """Read the PNG for a symbol and size.

        Raises:
            NotFound: If the blob does not exist
            StorageError: If the file exists but cannot be read
        """
        path = self.path_for(symbol, size)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise NotFound(f"logo file not found: {symbol}/{size.value}")
        except OSError as e:
            raise StorageError(f"reading logo file {path}: {e}") from e

    def write(self, symbol: str, size: LogoSize, data: bytes) -> None:
        """Atomically create or overwrite the PNG for a symbol and size."""
        directory = self.symbol_dir(symbol)
        path = self.path_for(symbol, size)
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{size.value}.", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StorageError(f"writing logo file {path}: {e}") from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
        log.debug("blob.write symbol=%s size=%s bytes=%d", symbol, size.value, len(data))

    def exists(self, symbol: str, size: LogoSize) -> bool:
        return self.path_for(symbol, size).is_file()

    def delete_symbol(self, symbol: str) -> None:
        """Remove every stored size for a symbol. Missing symbols are ignored."""
        directory = self.symbol_dir(symbol)
        try:
            shutil.rmtree(directory)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"deleting logo directory {directory}: {e}") from e
