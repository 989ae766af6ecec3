"""
Repository-scoped context.

The context is threaded explicitly into every component that needs to know
where a repository lives; there is no process-wide repository root.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


class RepositoryContext(BaseModel):
    """Locations inside a single repository instance."""

    root: Path

    model_config = ConfigDict(frozen=True)

    @property
    def config_path(self) -> Path:
        return self.root / "config.xml"

    @property
    def data_path(self) -> Path:
        return self.root / "data"

    @property
    def users_path(self) -> Path:
        return self.data_path / "users"

    def check_path(self, year: Optional[str] = None) -> Path:
        return self.data_path / year if year else self.data_path

    def relativize(self, path: Union[str, Path, None]) -> str:
        """
        Express a path relative to the repository root.

        Paths outside the repository are returned unchanged.
        """
        if not path:
            return ""

        candidate = Path(path)
        try:
            return candidate.relative_to(self.root).as_posix()
        except ValueError:
            return str(candidate)
