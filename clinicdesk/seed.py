"""Bundled seed snapshot used when nothing has been persisted yet."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import StorageError

SEED_PATH = Path(__file__).resolve().parent / "data" / "seed.json"


class SeedLoader:
    """Read the seed file once and hand out fresh copies of it."""

    ENCODING = "utf-8"

    def __init__(self, seed_path: Optional[Path] = None) -> None:
        self.seed_path = Path(seed_path) if seed_path else SEED_PATH
        self._text: Optional[str] = None

    def load(self) -> Dict[str, Any]:
        if self._text is None:
            try:
                self._text = self.seed_path.read_text(encoding=self.ENCODING)
            except OSError as exc:
                raise StorageError(f"Seed snapshot not found: {self.seed_path}") from exc
        return json.loads(self._text)
