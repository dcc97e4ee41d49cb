"""Pipeline stages for Protocol to FHIR conversion.

Stages:
1. stage_extract - Document bytes to plain text (docx, LaTeX, plain)
2. stage_author - AI-authored protocol text from a prompt
3. stage_synthesize - Text to resource bundle (remote candidates, local fallback)
4. stage_validate - Structural validation report
5. stage_deploy - Validation-gated publish to the FHIR server

The controller sequences them for one session; each stage can also be
used on its own.
"""

from .controller import PipelineController
from .stage_author import ProtocolAuthor
from .stage_deploy import (
    DeploymentGate,
    GateState,
    HttpPublisher,
    SimulatedPublisher,
    create_publisher,
)
from .stage_extract import TextExtractor, strip_latex
from .stage_synthesize import (
    LocalFallbackStrategy,
    RemoteEndpointStrategy,
    ResourceSynthesizer,
    SynthesisOutcome,
)
from .stage_validate import BundleValidator

__all__ = [
    # Extraction
    "TextExtractor",
    "strip_latex",
    # Authoring
    "ProtocolAuthor",
    # Synthesis
    "ResourceSynthesizer",
    "RemoteEndpointStrategy",
    "LocalFallbackStrategy",
    "SynthesisOutcome",
    # Validation
    "BundleValidator",
    # Deployment
    "DeploymentGate",
    "GateState",
    "HttpPublisher",
    "SimulatedPublisher",
    "create_publisher",
    # Orchestration
    "PipelineController",
]
