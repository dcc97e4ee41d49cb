"""Deployment Stage - Publish validated bundles to the target FHIR server.

DeploymentGate is a two-state machine (NOT_DEPLOYED -> DEPLOYED). The only
transition is deploy(), and its precondition is that the last validation
report is absent or valid. An absent report is permitted so that manually
prepared bundles can be deployed without a validation run.
"""

import logging
import threading
import time
from enum import Enum
from typing import Optional, Protocol

import httpx

from protofhir.config import settings
from protofhir.exceptions import (
    DeploymentBlockedError,
    DeploymentError,
    DeploymentTransportError,
    OperationCancelled,
)
from protofhir.models import DeploymentReceipt, ResourceBundle, ValidationReport

logger = logging.getLogger(__name__)


class GateState(str, Enum):
    """Deployment gate states."""

    NOT_DEPLOYED = "not_deployed"
    DEPLOYED = "deployed"


class BundlePublisher(Protocol):
    """Target system collaborator. Publishing the same bundle twice is harmless."""

    @property
    def target(self) -> str: ...

    def publish(self, bundle: ResourceBundle) -> None: ...


class SimulatedPublisher:
    """Stand-in target that only waits and records published bundle ids."""

    target = "simulated"

    def __init__(self, delay: Optional[float] = None):
        """Initialize publisher.

        Args:
            delay: Seconds to wait per publish (default from settings).
        """
        self.delay = settings.deploy_simulated_delay_seconds if delay is None else delay
        self.published: dict[str, ResourceBundle] = {}

    def publish(self, bundle: ResourceBundle) -> None:
        if bundle.id in self.published:
            logger.info("Bundle %s already published; skipping", bundle.id)
            return
        if self.delay > 0:
            time.sleep(self.delay)
        self.published[bundle.id] = bundle


class HttpPublisher:
    """Publishes bundles to a FHIR server with an idempotent PUT."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize publisher.

        Args:
            base_url: FHIR server base URL (default from settings).
            timeout: Request timeout in seconds (default from settings).
            client: HTTP client to use; one is created if omitted.
        """
        base_url = base_url or settings.fhir_server_url
        if not base_url:
            raise ValueError("FHIR server URL is required. Set FHIR_SERVER_URL environment variable.")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.deploy_timeout_seconds
        self.client = client or httpx.Client(timeout=self.timeout)

    @property
    def target(self) -> str:
        return self.base_url

    def publish(self, bundle: ResourceBundle) -> None:
        url = f"{self.base_url}/Bundle/{bundle.id}"
        try:
            response = self.client.put(
                url,
                content=bundle.to_json(indent=None),
                headers={"Content-Type": "application/fhir+json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise DeploymentTransportError(f"Error deploying to {url}: {exc}", cause=exc) from exc

        if not response.is_success:
            raise DeploymentTransportError(
                f"Error deploying to {url}: HTTP {response.status_code} {response.text[:200]}"
            )


def create_publisher(target: Optional[str] = None) -> BundlePublisher:
    """Build the publisher named by ``deploy_target``."""
    target = target or settings.deploy_target
    if target == "simulated":
        return SimulatedPublisher()
    if target == "http":
        return HttpPublisher()
    raise ValueError(f"Unknown deploy target: {target!r} (expected 'simulated' or 'http')")


class DeploymentGate:
    """Fail-closed guard in front of the publisher."""

    def __init__(self, publisher: Optional[BundlePublisher] = None):
        self.publisher = publisher or create_publisher()
        self.state = GateState.NOT_DEPLOYED
        self.receipt: Optional[DeploymentReceipt] = None

    @property
    def is_deployed(self) -> bool:
        return self.state == GateState.DEPLOYED

    def deploy(
        self,
        bundle: ResourceBundle,
        report: Optional[ValidationReport] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> DeploymentReceipt:
        """Publish the bundle if the report allows it.

        Args:
            bundle: Bundle to publish.
            report: Last validation report; None skips the validity check.
            cancel_event: Set by the caller to abandon before publishing.

        Returns:
            DeploymentReceipt for the published bundle.

        Raises:
            DeploymentBlockedError: If report is present and not valid.
            DeploymentError: If a different bundle is already deployed.
            DeploymentTransportError: If the publish call fails.
            OperationCancelled: If cancel_event is set before publishing.
        """
        if report is not None and not report.valid:
            logger.warning(
                "Deployment of bundle %s blocked: %d validation errors", bundle.id, report.errors
            )
            raise DeploymentBlockedError()

        if self.is_deployed and self.receipt is not None:
            if bundle.id != self.receipt.bundle_id:
                raise DeploymentError(
                    f"Bundle {self.receipt.bundle_id} is already deployed; "
                    f"reset before deploying bundle {bundle.id}"
                )
            logger.info("Bundle %s already deployed; deploy is a no-op", bundle.id)
            return self.receipt

        if report is None:
            logger.warning("Deploying bundle %s without a validation report", bundle.id)

        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled()

        try:
            self.publisher.publish(bundle)
        except DeploymentTransportError:
            raise
        except Exception as exc:
            raise DeploymentTransportError(
                f"Error deploying to {self.publisher.target}: {exc}", cause=exc
            ) from exc

        self.receipt = DeploymentReceipt(
            bundle_id=bundle.id,
            resource_count=bundle.resource_count,
            target=self.publisher.target,
        )
        self.state = GateState.DEPLOYED
        logger.info("Deployed bundle %s to %s", bundle.id, self.publisher.target)
        return self.receipt

    def reset(self) -> None:
        """Return to NOT_DEPLOYED. Only a full session reset calls this."""
        self.state = GateState.NOT_DEPLOYED
        self.receipt = None
