"""Synthesis Stage - Turn protocol text into a FHIR resource bundle.

Strategy chain:
1. One RemoteEndpointStrategy per candidate path on the configured synthesis
   service, tried in order. Any network error, non-2xx status or malformed
   body means "try the next candidate".
2. LocalFallbackStrategy, which always succeeds with a fixed five-resource
   skeleton. The skeleton does not reflect the input text; callers can tell
   it apart through SynthesisOutcome.source.

Synthesis never raises to callers except on cooperative cancellation.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from protofhir.config import settings
from protofhir.exceptions import CandidateFailure, OperationCancelled, SynthesisDegraded
from protofhir.models import BundleSource, ResourceBundle

logger = logging.getLogger(__name__)

FALLBACK_MEDICATION_SYSTEM = "http://example.org/medication-codes"


class SynthesisStrategy(ABC):
    """One way of producing a bundle from text."""

    name: str = "strategy"

    @abstractmethod
    def attempt(self, text: str, locale: str) -> ResourceBundle:
        """Produce a bundle or raise CandidateFailure."""


class RemoteEndpointStrategy(SynthesisStrategy):
    """POSTs the text to a single synthesis endpoint."""

    def __init__(self, url: str, client: httpx.Client, timeout: float):
        """Initialize the strategy.

        Args:
            url: Full candidate URL.
            client: Shared HTTP client.
            timeout: Per-request timeout in seconds.
        """
        self.url = url
        self.name = url
        self.client = client
        self.timeout = timeout

    def attempt(self, text: str, locale: str) -> ResourceBundle:
        try:
            response = self.client.post(
                self.url,
                json={"text": text, "language": locale},
                timeout=self.timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise CandidateFailure(self.url, f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise CandidateFailure(
                self.url,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            bundle = ResourceBundle.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise CandidateFailure(
                self.url,
                f"Malformed bundle: {exc}",
                status_code=response.status_code,
            ) from exc

        if not bundle.entry:
            raise CandidateFailure(self.url, "Bundle has no entries", status_code=response.status_code)
        return bundle


def build_fallback_resources() -> list[dict[str, Any]]:
    """Fixed Patient/Practitioner/ResearchStudy/MedicationRequest/CarePlan skeleton."""
    return [
        {
            "resourceType": "Patient",
            "id": "protocol-patient-001",
            "name": [{"family": "Generated", "given": ["Protocol"]}],
            "gender": "unknown",
            "birthDate": "1980-01-01",
        },
        {
            "resourceType": "Practitioner",
            "id": "principal-investigator",
            "name": [{"family": "Larsson", "given": ["Emma"], "prefix": ["Dr."]}],
            "qualification": [
                {
                    "code": {
                        "coding": [
                            {
                                "system": "http://terminology.hl7.org/CodeSystem/v2-0360",
                                "code": "MD",
                                "display": "Doctor of Medicine",
                            }
                        ]
                    }
                }
            ],
        },
        {
            "resourceType": "ResearchStudy",
            "id": "clinical-protocol-study",
            "status": "active",
            "title": "AI Generated Clinical Protocol Study",
            "protocol": [{"display": "Study protocol generated from clinical text"}],
            "principalInvestigator": {"reference": "Practitioner/principal-investigator"},
        },
        {
            "resourceType": "MedicationRequest",
            "id": "protocol-medication-001",
            "status": "active",
            "intent": "order",
            "subject": {"reference": "Patient/protocol-patient-001"},
            "medicationCodeableConcept": {
                "coding": [
                    {
                        "system": FALLBACK_MEDICATION_SYSTEM,
                        "code": "primary-medication",
                        "display": "Primary medication",
                    }
                ],
                "text": "Primary medication 10mg daily",
            },
            "dosageInstruction": [
                {
                    "text": "10mg daily, titrated based on response",
                    "timing": {"repeat": {"frequency": 1, "period": 1, "periodUnit": "d"}},
                }
            ],
        },
        {
            "resourceType": "CarePlan",
            "id": "protocol-careplan-001",
            "status": "active",
            "intent": "plan",
            "subject": {"reference": "Patient/protocol-patient-001"},
            "title": "Clinical Protocol Care Plan",
            "description": "Comprehensive care plan derived from clinical protocol",
            "activity": [
                {
                    "detail": {
                        "status": "scheduled",
                        "description": "Follow-up visits at weeks 2, 4, 8, 12, 24",
                    }
                }
            ],
        },
    ]


class LocalFallbackStrategy(SynthesisStrategy):
    """Deterministic local skeleton; never fails."""

    name = "local-fallback"

    def attempt(self, text: str, locale: str) -> ResourceBundle:
        return ResourceBundle.from_resources(build_fallback_resources())


@dataclass
class SynthesisOutcome:
    """Bundle plus how it was obtained."""

    bundle: ResourceBundle
    source: BundleSource
    endpoint: Optional[str] = None
    failures: list[CandidateFailure] = field(default_factory=list)
    degraded: Optional[SynthesisDegraded] = None

    @property
    def is_fallback(self) -> bool:
        return self.source == BundleSource.FALLBACK


class ResourceSynthesizer:
    """Synthesizes resource bundles, preferring the remote service.

    The overall attempt sequence is bounded by the number of candidates
    times the per-request timeout.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        endpoints: Optional[list[str]] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        fallback: Optional[SynthesisStrategy] = None,
    ):
        """Initialize synthesizer.

        Args:
            base_url: Synthesis service base address (default from settings).
            endpoints: Candidate paths in attempt order (default from settings).
            language: Default locale sent with the text (default from settings).
            timeout: Per-candidate timeout in seconds (default from settings).
            client: HTTP client to use; one is created (and owned) if omitted.
            fallback: Strategy used when every remote candidate fails.
        """
        self.base_url = (base_url or settings.synthesis_base_url).rstrip("/")
        self.endpoints = list(settings.synthesis_endpoints if endpoints is None else endpoints)
        self.language = language or settings.synthesis_language
        self.timeout = timeout if timeout is not None else settings.synthesis_timeout_seconds

        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=self.timeout)

        self.remote_strategies: list[SynthesisStrategy] = [
            RemoteEndpointStrategy(f"{self.base_url}{path}", self.client, self.timeout)
            for path in self.endpoints
        ]
        self.fallback = fallback or LocalFallbackStrategy()
        self.last_outcome: Optional[SynthesisOutcome] = None

    def __enter__(self) -> "ResourceSynthesizer":
        return self

    def __exit__(self, _exc_type: object, _exc: object, _tb: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this synthesizer created it."""
        if self._owns_client:
            self.client.close()

    def synthesize(
        self,
        text: str,
        locale: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ResourceBundle:
        """Synthesize a bundle from text.

        Args:
            text: Protocol text (not modified).
            locale: Language code sent to the service (default: self.language).
            cancel_event: Set by the caller to abandon the attempt sequence.

        Returns:
            ResourceBundle with at least one resource.

        Raises:
            OperationCancelled: If cancel_event is set before a bundle is produced.
        """
        return self.synthesize_with_outcome(text, locale, cancel_event).bundle

    def synthesize_with_outcome(
        self,
        text: str,
        locale: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SynthesisOutcome:
        """Synthesize a bundle and report which path produced it."""
        locale = locale or self.language
        failures: list[CandidateFailure] = []

        for strategy in self.remote_strategies:
            _check_cancelled(cancel_event)
            try:
                bundle = strategy.attempt(text, locale)
            except CandidateFailure as failure:
                logger.info("Synthesis candidate failed: %s", failure)
                failures.append(failure)
                continue
            except Exception as exc:
                logger.warning("Synthesis candidate %s raised unexpectedly", strategy.name, exc_info=True)
                failures.append(CandidateFailure(strategy.name, f"{type(exc).__name__}: {exc}"))
                continue

            _check_cancelled(cancel_event)
            logger.info(
                "Synthesized bundle %s (%d resources) via %s",
                bundle.id,
                bundle.resource_count,
                strategy.name,
            )
            outcome = SynthesisOutcome(
                bundle=bundle,
                source=BundleSource.REMOTE,
                endpoint=strategy.name,
                failures=failures,
            )
            self.last_outcome = outcome
            return outcome

        _check_cancelled(cancel_event)
        degraded = SynthesisDegraded(failures)
        logger.warning("%s", degraded.message)

        bundle = self.fallback.attempt(text, locale)
        outcome = SynthesisOutcome(
            bundle=bundle,
            source=BundleSource.FALLBACK,
            failures=failures,
            degraded=degraded,
        )
        self.last_outcome = outcome
        return outcome


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled()
