from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional


SAMPLE_EXTENSIONS = {"asm": ".asm", "pascal": ".pas"}


class SampleError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class Sample:
    engine: str
    name: str
    filename: str
    source: str


def _default_samples_dir() -> Path:
    return Path(__file__).resolve().parent / "assets" / "samples"


class SampleLibrary:
    """Bundled example programs, one directory per engine type."""

    def __init__(self, root: Optional[Path] = None) -> None:
        self.root = root or _default_samples_dir()

    def names(self, engine: str) -> List[str]:
        extension = self._extension(engine)
        folder = self.root / engine
        if not folder.is_dir():
            return []
        return sorted(path.stem for path in folder.glob(f"*{extension}"))

    def get(self, engine: str, name: str) -> Sample:
        extension = self._extension(engine)
        key = name.strip().lower()
        path = self.root / engine / f"{key}{extension}"
        if key not in self.names(engine):
            raise SampleError(f"Unknown sample type: {engine}/{name}")
        try:
            source = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SampleError(f"Failed to read sample {path.name}: {exc}") from exc
        return Sample(engine=engine, name=key, filename=path.name, source=source)

    def _extension(self, engine: str) -> str:
        if engine not in SAMPLE_EXTENSIONS:
            raise SampleError(f"Unknown sample type: {engine}")
        return SAMPLE_EXTENSIONS[engine]
