"""JSON file storage for task snapshots and discovery logs.

Every write goes to a new file; nothing is overwritten in place or pruned.
"Latest" lookups rely on filenames embedding a sortable timestamp.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class Store:
    """File storage rooted at the task manager's base path.

    Read and write methods raise OSError / ValueError; callers decide
    whether a failure is fatal. Missing directories are never an error
    on the read side.
    """

    def __init__(self, base: Path) -> None:
        self._base = Path(base)

    @property
    def base(self) -> Path:
        return self._base

    def ensure_dir(self, subdir: str) -> Path:
        """Create <base>/<subdir> if needed (idempotent) and return it."""
        path = self._base / subdir
        path.mkdir(parents=True, exist_ok=True)
        return path

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_json(self, subdir: str, filename: str, model: BaseModel) -> Path:
        """Write a Pydantic model as a JSON file."""
        path = self.ensure_dir(subdir) / filename
        path.write_text(model.model_dump_json(indent=2), encoding="utf-8")
        return path

    def write_json_list(self, subdir: str, filename: str, models: list[T]) -> Path:
        """Write a list of Pydantic models as a JSON array."""
        path = self.ensure_dir(subdir) / filename
        payload = [m.model_dump(mode="json") for m in models]
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return path

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read_json(self, subdir: str, filename: str, model_class: type[T]) -> T | None:
        """Read a JSON file and parse it as a Pydantic model. None if absent."""
        path = self._base / subdir / filename
        if not path.exists():
            return None
        return model_class.model_validate_json(path.read_text(encoding="utf-8"))

    def read_json_list(self, subdir: str, filename: str, model_class: type[T]) -> list[T]:
        """Read a JSON array of models. Empty list if the file is absent."""
        path = self._base / subdir / filename
        if not path.exists():
            return []
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError(f"{path} does not contain a JSON array")
        return [model_class.model_validate(item) for item in data]

    def list_files(self, subdir: str, prefix: str = "", suffix: str = ".json") -> list[str]:
        """Lexicographically sorted filenames in <base>/<subdir>."""
        dirpath = self._base / subdir
        if not dirpath.is_dir():
            return []
        return sorted(
            p.name
            for p in dirpath.iterdir()
            if p.is_file() and p.name.startswith(prefix) and p.name.endswith(suffix)
        )

    def latest_file(self, subdir: str, prefix: str = "", suffix: str = ".json") -> str | None:
        """Lexicographically last matching filename, or None."""
        files = self.list_files(subdir, prefix=prefix, suffix=suffix)
        return files[-1] if files else None
