"""Pipeline controller - sequences the stages of one conversion session.

Stages:
1. INPUT     -> PROCESS   ingest_document() / ingest_text() / author_protocol()
2. PROCESS   -> REVIEW    convert(): synthesize, then validate
3. REVIEW    -> DEPLOYED  deploy(): through the deployment gate
4. DEPLOYED  terminal; reset() starts over

back() rewinds REVIEW -> PROCESS keeping the extracted text. Each operation
clears the current error first. Results are computed before anything is
committed, so a failed or cancelled operation leaves the session untouched
apart from the recorded error.
"""

import logging
import threading
from typing import Optional

from protofhir.exceptions import (
    DeploymentError,
    ExtractionError,
    OperationCancelled,
    ProtofhirError,
    StageTransitionError,
)
from protofhir.models import (
    Document,
    ExtractedText,
    PipelineSession,
    PipelineStage,
    ResourceBundle,
    TextProvenance,
)
from protofhir.pipeline.stage_author import ProtocolAuthor
from protofhir.pipeline.stage_deploy import DeploymentGate
from protofhir.pipeline.stage_extract import TextExtractor
from protofhir.pipeline.stage_synthesize import ResourceSynthesizer, SynthesisOutcome
from protofhir.pipeline.stage_validate import BundleValidator

logger = logging.getLogger(__name__)


class PipelineController:
    """Owns the PipelineSession and the only code path that mutates it."""

    def __init__(
        self,
        extractor: Optional[TextExtractor] = None,
        author: Optional[ProtocolAuthor] = None,
        synthesizer: Optional[ResourceSynthesizer] = None,
        validator: Optional[BundleValidator] = None,
        gate: Optional[DeploymentGate] = None,
        locale: Optional[str] = None,
    ):
        """Initialize controller with its stage collaborators.

        Args:
            extractor: Text extraction stage.
            author: AI protocol authoring stage.
            synthesizer: Resource synthesis stage.
            validator: Bundle validation stage.
            gate: Deployment gate.
            locale: Language code for synthesis (default: synthesizer's).
        """
        self.extractor = extractor or TextExtractor()
        self.author = author or ProtocolAuthor()
        self.synthesizer = synthesizer or ResourceSynthesizer()
        self.validator = validator or BundleValidator()
        self.gate = gate or DeploymentGate()
        self.locale = locale
        self.last_synthesis: Optional[SynthesisOutcome] = None
        self._session = PipelineSession()

    def __enter__(self) -> "PipelineController":
        return self

    def __exit__(self, _exc_type: object, _exc: object, _tb: object) -> None:
        self.close()

    def close(self) -> None:
        self.synthesizer.close()

    @property
    def session(self) -> PipelineSession:
        """Immutable snapshot of the current session."""
        return self._session

    @property
    def stage(self) -> PipelineStage:
        return self._session.stage

    # -- Stage 1 -> 2 ------------------------------------------------------

    def ingest_document(self, document: Document) -> ExtractedText:
        """Extract text from an uploaded document and advance to PROCESS.

        Raises:
            ExtractionError: If the document cannot be read; stage is unchanged.
            StageTransitionError: If not at the INPUT stage.
        """
        self._begin(PipelineStage.INPUT, "ingest a document")
        try:
            extracted = self.extractor.extract(document)
        except ExtractionError as exc:
            self._fail(exc)
            raise

        self._commit(stage=PipelineStage.PROCESS, document=document, extracted_text=extracted)
        return extracted

    def ingest_text(
        self,
        text: str,
        provenance: TextProvenance = TextProvenance.AI_GENERATED,
    ) -> ExtractedText:
        """Accept protocol text directly and advance to PROCESS.

        Raises:
            ExtractionError: If the text is blank.
            StageTransitionError: If not at the INPUT stage.
        """
        self._begin(PipelineStage.INPUT, "ingest text")
        if not text or not text.strip():
            exc = ExtractionError("No protocol text provided")
            self._fail(exc)
            raise exc

        extracted = ExtractedText(text=text, provenance=provenance)
        self._commit(stage=PipelineStage.PROCESS, extracted_text=extracted)
        return extracted

    def author_protocol(self, prompt: Optional[str] = None) -> ExtractedText:
        """Generate a protocol from a prompt and advance to PROCESS."""
        self._begin(PipelineStage.INPUT, "generate a protocol")
        extracted = self.author.author(prompt)
        self._commit(stage=PipelineStage.PROCESS, extracted_text=extracted)
        return extracted

    # -- Stage 2 -> 3 ------------------------------------------------------

    def convert(self, cancel_event: Optional[threading.Event] = None) -> ResourceBundle:
        """Synthesize and validate a bundle, then advance to REVIEW.

        The stage advances whether or not the bundle is valid; only
        deployment is blocked by an invalid report.

        Raises:
            OperationCancelled: If cancel_event is set; stage is unchanged.
            StageTransitionError: If not at the PROCESS stage.
        """
        self._begin(PipelineStage.PROCESS, "convert text")
        text = self._session.extracted_text.text

        try:
            outcome = self.synthesizer.synthesize_with_outcome(text, self.locale, cancel_event)
            report = self.validator.validate(outcome.bundle)
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelled()
        except OperationCancelled as exc:
            self._fail(exc)
            raise

        self.last_synthesis = outcome
        self._commit(
            stage=PipelineStage.REVIEW,
            bundle=outcome.bundle,
            bundle_source=outcome.source,
            validation=report,
        )
        return outcome.bundle

    def back(self) -> PipelineSession:
        """Rewind REVIEW -> PROCESS, keeping the extracted text."""
        self._begin(PipelineStage.REVIEW, "go back to text")
        self._commit(
            stage=PipelineStage.PROCESS,
            bundle=None,
            bundle_source=None,
            validation=None,
        )
        return self._session

    # -- Stage 3 -> 4 ------------------------------------------------------

    def deploy(self, cancel_event: Optional[threading.Event] = None) -> PipelineSession:
        """Deploy the current bundle through the gate and advance to DEPLOYED.

        Raises:
            DeploymentBlockedError: If the current report is invalid; stage stays REVIEW.
            DeploymentTransportError: If publishing fails; stage stays REVIEW.
            OperationCancelled: If cancel_event is set before publishing.
            StageTransitionError: If not at the REVIEW stage.
        """
        self._begin(PipelineStage.REVIEW, "deploy")
        try:
            receipt = self.gate.deploy(
                self._session.bundle,
                self._session.validation,
                cancel_event=cancel_event,
            )
        except (DeploymentError, OperationCancelled) as exc:
            self._fail(exc)
            raise

        self._commit(stage=PipelineStage.DEPLOYED, deployed=True, receipt=receipt)
        return self._session

    # -- Session -------------------------------------------------------------

    def reset(self) -> PipelineSession:
        """Discard everything and start a fresh session at INPUT."""
        self.gate.reset()
        self.last_synthesis = None
        self._session = PipelineSession()
        logger.info("Pipeline session reset")
        return self._session

    def export_bundle(self) -> str:
        """Canonical JSON of the current bundle.

        Raises:
            StageTransitionError: If no bundle has been produced yet.
        """
        if self._session.bundle is None:
            raise StageTransitionError(self.stage.value, "export a bundle")
        return self._session.bundle.to_json()

    # -- Internals -------------------------------------------------------------

    def _begin(self, required: PipelineStage, operation: str) -> None:
        self._session = self._session.evolve(error=None)
        if self.stage != required:
            exc = StageTransitionError(self.stage.value, operation)
            self._fail(exc)
            raise exc

    def _fail(self, exc: ProtofhirError) -> None:
        logger.warning("Stage %d operation failed: %s", self.stage.value, exc.message)
        self._session = self._session.evolve(error=exc.message)

    def _commit(self, **changes) -> None:
        previous = self.stage
        self._session = self._session.evolve(**changes)
        if self.stage != previous:
            logger.info("Pipeline stage %s -> %s", previous.label, self.stage.label)
