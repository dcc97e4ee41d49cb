"""Pytest configuration and fixtures."""

from typing import Optional
from unittest.mock import MagicMock

import docx
import pytest

from protofhir.config import settings
from protofhir.models import ResourceBundle
from protofhir.pipeline import (
    BundleValidator,
    DeploymentGate,
    PipelineController,
    ProtocolAuthor,
    ResourceSynthesizer,
    SimulatedPublisher,
)
from protofhir.pipeline.stage_synthesize import build_fallback_resources


def make_response(
    status_code: int,
    json_data: Optional[object] = None,
    json_error: Optional[Exception] = None,
) -> MagicMock:
    """Fake httpx response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.is_success = 200 <= status_code < 300
    resp.text = str(json_data)
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = json_data
    return resp


@pytest.fixture(autouse=True)
def offline_settings(monkeypatch):
    """Keep tests off the network and free of simulated deploy delays."""
    monkeypatch.setattr(settings, "synthesis_base_url", "http://synthesis.test")
    monkeypatch.setattr(settings, "deploy_target", "simulated")
    monkeypatch.setattr(settings, "deploy_simulated_delay_seconds", 0.0)


@pytest.fixture
def remote_bundle_json():
    """Bundle as returned by a healthy synthesis service."""
    return {
        "resourceType": "Bundle",
        "id": "remote-bundle-1",
        "type": "collection",
        "timestamp": "2026-01-15T09:30:00Z",
        "entry": [
            {
                "resource": {
                    "resourceType": "Patient",
                    "id": "pt-1",
                    "gender": "female",
                }
            },
            {
                "resource": {
                    "resourceType": "Observation",
                    "id": "obs-1",
                    "status": "final",
                    "code": {
                        "coding": [
                            {"system": "http://loinc.org", "code": "8480-6", "display": "Systolic BP"}
                        ]
                    },
                    "subject": {"reference": "Patient/pt-1"},
                }
            },
        ],
    }


@pytest.fixture
def fallback_bundle():
    """The local five-resource skeleton."""
    return ResourceBundle.from_resources(build_fallback_resources())


@pytest.fixture
def mock_client():
    """HTTP client double; set ``post.side_effect`` / ``post.return_value`` per test."""
    return MagicMock()


@pytest.fixture
def offline_synthesizer(mock_client):
    """Synthesizer with every candidate returning HTTP 500."""
    mock_client.post.return_value = make_response(500)
    return ResourceSynthesizer(
        base_url="http://synthesis.test",
        language="da",
        timeout=1.0,
        client=mock_client,
    )


@pytest.fixture
def publisher():
    return SimulatedPublisher(delay=0)


@pytest.fixture
def controller(offline_synthesizer, publisher):
    """Controller wired to offline synthesis and an instant publisher."""
    return PipelineController(
        author=ProtocolAuthor(clock=lambda: 1700000000000),
        synthesizer=offline_synthesizer,
        validator=BundleValidator(),
        gate=DeploymentGate(publisher),
    )


@pytest.fixture
def docx_path(tmp_path):
    """A small Word protocol document."""
    word_doc = docx.Document()
    word_doc.add_paragraph("Study Protocol")
    word_doc.add_paragraph("Inclusion: adults aged 18-65.")
    paragraph = word_doc.add_paragraph("Dose: ")
    paragraph.add_run("10mg daily").bold = True
    table = word_doc.add_table(rows=1, cols=2)
    table.cell(0, 0).text = "Visit"
    table.cell(0, 1).text = "Week 2"

    path = tmp_path / "protocol.docx"
    word_doc.save(str(path))
    return path
