"""Models for the final export artifact."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel


class ExportArtifact(BaseModel):
    filename: str
    path: Path
    media_type: str
    duration_sec: float
    width: int
    height: int

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()
