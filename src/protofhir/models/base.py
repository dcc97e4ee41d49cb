"""Base models and common types for the Protocol to FHIR pipeline."""

from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePath
from typing import Optional

from pydantic import BaseModel


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class MediaKind(str, Enum):
    """Declared media kind of an input document."""

    WORD_PROCESSOR = "word_processor"
    TYPESETTING = "typesetting"
    PDF = "pdf"
    PLAIN = "plain"
    UNKNOWN = "unknown"

    @classmethod
    def from_filename(
        cls,
        filename: str,
        content_type: Optional[str] = None,
    ) -> "MediaKind":
        """Infer the media kind from a filename and optional MIME type.

        Args:
            filename: Original file name (only the suffix is inspected).
            content_type: MIME type reported by the uploader, if any.

        Returns:
            MediaKind enum value, UNKNOWN when nothing matches.
        """
        suffix = PurePath(filename).suffix.lower()
        content_type = (content_type or "").lower()

        if "word" in content_type or suffix in (".docx", ".doc"):
            return cls.WORD_PROCESSOR
        if content_type == "application/pdf" or suffix == ".pdf":
            return cls.PDF
        if suffix in (".tex", ".latex"):
            return cls.TYPESETTING
        if suffix == ".txt" or content_type == "text/plain":
            return cls.PLAIN
        return cls.UNKNOWN


class TextProvenance(str, Enum):
    """Where the extracted protocol text came from."""

    UPLOADED = "uploaded"
    AI_GENERATED = "ai-generated"


class BundleSource(str, Enum):
    """Which synthesis path produced a bundle."""

    REMOTE = "remote"
    FALLBACK = "fallback"


class Severity(str, Enum):
    """Severity of a validation finding."""

    ERROR = "error"  # blocks deployment
    WARNING = "warning"
    INFORMATION = "information"


class PipelineStage(int, Enum):
    """Linear stages of a conversion session."""

    INPUT = 1
    PROCESS = 2
    REVIEW = 3
    DEPLOYED = 4

    @property
    def label(self) -> str:
        """Human-readable stage label."""
        return _STAGE_LABELS[self]


_STAGE_LABELS = {
    PipelineStage.INPUT: "Generate/Upload",
    PipelineStage.PROCESS: "Process",
    PipelineStage.REVIEW: "Validate & Generate",
    PipelineStage.DEPLOYED: "Deploy",
}


class FrozenModel(BaseModel):
    """Base class for immutable pipeline artifacts."""

    class Config:
        frozen = True
