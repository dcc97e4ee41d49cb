"""Input document and extracted text models."""

from pathlib import Path
from typing import Optional

from pydantic import Field

from .base import FrozenModel, MediaKind, TextProvenance


class Document(FrozenModel):
    """
    Raw input document as handed over by the presentation layer.

    Immutable once ingested. Consumed once by the text extraction stage.
    """

    content: bytes = Field(..., description="Raw document bytes")
    kind: MediaKind = Field(default=MediaKind.UNKNOWN)
    filename: Optional[str] = Field(None, description="Original filename, if known")

    @classmethod
    def from_path(cls, path: Path, kind: Optional[MediaKind] = None) -> "Document":
        """Read a document from disk, inferring its kind from the suffix."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Document not found: {path}")
        return cls(
            content=path.read_bytes(),
            kind=kind or MediaKind.from_filename(path.name),
            filename=path.name,
        )

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class ExtractedText(FrozenModel):
    """Normalized plain text plus provenance tag."""

    text: str
    provenance: TextProvenance = Field(default=TextProvenance.UPLOADED)
    source_filename: Optional[str] = None

    @property
    def is_ai_generated(self) -> bool:
        """Check if the text was authored by the AI generation path."""
        return self.provenance == TextProvenance.AI_GENERATED
