"""Pipeline models for the Protocol to FHIR converter.

This module defines the Pydantic models that represent data flowing through
the pipeline stages. All models support JSON serialization; bundles keep
FHIR field names (``resourceType``, ``fullUrl``) on export.

Model Hierarchy:
- Document -> ExtractedText
- ResourceBundle -> BundleEntry -> Resource
- ValidationReport -> ValidationIssue
- PipelineSession holds all of the above for one conversion
"""

from .base import (
    BundleSource,
    FrozenModel,
    MediaKind,
    PipelineStage,
    Severity,
    TextProvenance,
    utcnow,
)
from .bundle import (
    BUNDLE_KIND_COLLECTION,
    BundleEntry,
    CodingSite,
    ReferenceSite,
    Resource,
    ResourceBundle,
    new_bundle_id,
)
from .document import (
    Document,
    ExtractedText,
)
from .session import (
    DeploymentReceipt,
    PipelineSession,
)
from .validation import (
    ValidationIssue,
    ValidationReport,
)

__all__ = [
    # Base types
    "BundleSource",
    "FrozenModel",
    "MediaKind",
    "PipelineStage",
    "Severity",
    "TextProvenance",
    "utcnow",
    # Input
    "Document",
    "ExtractedText",
    # Bundle
    "BUNDLE_KIND_COLLECTION",
    "BundleEntry",
    "CodingSite",
    "ReferenceSite",
    "Resource",
    "ResourceBundle",
    "new_bundle_id",
    # Validation
    "ValidationIssue",
    "ValidationReport",
    # Session
    "DeploymentReceipt",
    "PipelineSession",
]
