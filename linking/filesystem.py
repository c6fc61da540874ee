"""
Local filesystem access used for pointer files.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Union

PathLike = Union[str, "os.PathLike[str]"]


def normalize_path(path: PathLike) -> Path:
    """Absolute, user-expanded path without resolving symlinks."""
    return Path(os.path.abspath(os.path.expanduser(os.fspath(path))))


class LocalFileSystem:
    """create / read / rename / delete file, read directory."""

    encoding = "utf-8"

    def exists(self, path: PathLike) -> bool:
        return Path(path).exists()

    def create_file(self, path: PathLike, content: str) -> None:
        """Create ``path`` with ``content``. Fails if it already exists."""
        with open(path, "x", encoding=self.encoding) as fh:
            fh.write(content)

    def read_file(self, path: PathLike) -> str:
        return Path(path).read_text(encoding=self.encoding)

    def rename(self, old_path: PathLike, new_path: PathLike) -> None:
        if Path(new_path).exists():
            raise FileExistsError(f"Destination already exists: {new_path}")
        os.rename(old_path, new_path)

    def delete(self, path: PathLike) -> None:
        Path(path).unlink()

    def read_dir(self, path: PathLike) -> List[Path]:
        return sorted(Path(path).iterdir())
