"""Pipeline session aggregate.

One explicit stage plus the artifacts accumulated so far. Combinations that
cannot happen in a well-sequenced session (e.g. stage 3 without a bundle)
are rejected at construction time.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field, model_validator

from .base import BundleSource, FrozenModel, PipelineStage, utcnow
from .bundle import ResourceBundle
from .document import Document, ExtractedText
from .validation import ValidationReport


class DeploymentReceipt(FrozenModel):
    """Summary of a successful publish to the target system."""

    bundle_id: str
    resource_count: int = Field(..., ge=0)
    target: str = Field(..., description="Publisher description, e.g. 'simulated' or a server URL")
    deployed_at: datetime = Field(default_factory=utcnow)


class PipelineSession(FrozenModel):
    """Aggregate root of a single conversion session."""

    stage: PipelineStage = Field(default=PipelineStage.INPUT)
    document: Optional[Document] = None
    extracted_text: Optional[ExtractedText] = None
    bundle: Optional[ResourceBundle] = None
    bundle_source: Optional[BundleSource] = None
    validation: Optional[ValidationReport] = None
    deployed: bool = False
    receipt: Optional[DeploymentReceipt] = None
    error: Optional[str] = Field(None, description="Current error message, at most one")

    @model_validator(mode="after")
    def _check_stage_payload(self) -> "PipelineSession":
        if self.stage >= PipelineStage.PROCESS and self.extracted_text is None:
            raise ValueError(f"stage {self.stage.value} requires extracted text")
        if self.stage >= PipelineStage.REVIEW and self.bundle is None:
            raise ValueError(f"stage {self.stage.value} requires a resource bundle")
        if self.deployed != (self.stage == PipelineStage.DEPLOYED):
            raise ValueError("deployed flag must be set exactly at the deploy stage")
        return self

    def evolve(self, **changes) -> "PipelineSession":
        """Return a validated copy with the given fields replaced."""
        fields = {name: getattr(self, name) for name in type(self).model_fields}
        fields.update(changes)
        return type(self).model_validate(fields)

    @property
    def has_error(self) -> bool:
        return self.error is not None
