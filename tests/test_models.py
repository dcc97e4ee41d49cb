"""Tests for pipeline models."""

import pytest
from pydantic import ValidationError

from protofhir.models import (
    Document,
    ExtractedText,
    MediaKind,
    PipelineSession,
    PipelineStage,
    ResourceBundle,
    Severity,
    TextProvenance,
    ValidationIssue,
    ValidationReport,
)


class TestMediaKind:
    """Tests for media kind inference."""

    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("protocol.docx", MediaKind.WORD_PROCESSOR),
            ("PROTOCOL.DOC", MediaKind.WORD_PROCESSOR),
            ("protocol.pdf", MediaKind.PDF),
            ("protocol.tex", MediaKind.TYPESETTING),
            ("protocol.latex", MediaKind.TYPESETTING),
            ("notes.txt", MediaKind.PLAIN),
            ("notes.rtf", MediaKind.UNKNOWN),
        ],
    )
    def test_from_filename(self, filename, expected):
        """Suffix maps to the media kind."""
        assert MediaKind.from_filename(filename) == expected

    def test_word_content_type_wins(self):
        """MIME type mentioning word marks a word-processor document."""
        kind = MediaKind.from_filename(
            "upload.bin",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        )
        assert kind == MediaKind.WORD_PROCESSOR


class TestDocument:
    """Tests for Document model."""

    def test_from_path_infers_kind(self, tmp_path):
        """Reading a file infers its kind."""
        path = tmp_path / "protocol.tex"
        path.write_text(r"\section{Intro}")

        document = Document.from_path(path)

        assert document.kind == MediaKind.TYPESETTING
        assert document.filename == "protocol.tex"
        assert document.size_bytes == len(r"\section{Intro}")

    def test_from_path_missing_file(self, tmp_path):
        """Missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            Document.from_path(tmp_path / "missing.docx")

    def test_document_is_immutable(self):
        """Documents are frozen."""
        document = Document(content=b"abc", kind=MediaKind.PLAIN)
        with pytest.raises(ValidationError):
            document.content = b"xyz"


class TestResourceBundle:
    """Tests for bundle helpers and JSON export."""

    def test_defaults(self):
        """New bundle is a timestamped collection."""
        bundle = ResourceBundle()
        assert bundle.resource_type == "Bundle"
        assert bundle.type == "collection"
        assert bundle.id.startswith("ai-generated-protocol-")
        assert bundle.timestamp is not None
        assert bundle.resource_count == 0

    def test_fresh_ids(self):
        """Each bundle gets its own id."""
        assert ResourceBundle().id != ResourceBundle().id

    def test_resolve_relative_reference(self, fallback_bundle):
        """Type/id references resolve to the resource."""
        patient = fallback_bundle.resolve("Patient/protocol-patient-001")
        assert patient is not None
        assert patient.resource_type == "Patient"

    def test_resolve_full_url(self):
        """fullUrl references resolve to the resource."""
        bundle = ResourceBundle.model_validate(
            {
                "entry": [
                    {
                        "fullUrl": "urn:uuid:1234",
                        "resource": {"resourceType": "Patient", "id": "p"},
                    }
                ]
            }
        )
        assert bundle.resolve("urn:uuid:1234").id == "p"
        assert bundle.resolve("Patient/other") is None
        assert bundle.resolve("nonsense") is None

    def test_references(self, fallback_bundle):
        """All reference sites are listed with paths."""
        sites = {(s.path, s.reference) for s in fallback_bundle.references()}
        assert sites == {
            ("ResearchStudy.principalInvestigator", "Practitioner/principal-investigator"),
            ("MedicationRequest.subject", "Patient/protocol-patient-001"),
            ("CarePlan.subject", "Patient/protocol-patient-001"),
        }

    def test_codings(self, fallback_bundle):
        """Codings are listed with their concept path."""
        sites = {(s.path, s.system) for s in fallback_bundle.codings()}
        assert ("Practitioner.qualification.code", "http://terminology.hl7.org/CodeSystem/v2-0360") in sites
        assert ("MedicationRequest.medicationCodeableConcept", "http://example.org/medication-codes") in sites

    def test_attributes_are_preserved(self, fallback_bundle):
        """Type-specific attributes are kept verbatim."""
        careplan = fallback_bundle.resolve("CarePlan/protocol-careplan-001")
        assert careplan.attributes["title"] == "Clinical Protocol Care Plan"
        assert careplan.reference == "CarePlan/protocol-careplan-001"

    def test_json_round_trip(self, fallback_bundle):
        """Export then import yields a structurally equal bundle."""
        exported = fallback_bundle.to_json()
        parsed = ResourceBundle.from_json(exported)

        assert parsed == fallback_bundle
        assert parsed.resource_types == fallback_bundle.resource_types
        assert parsed.resource_ids == fallback_bundle.resource_ids
        assert [s.reference for s in parsed.references()] == [
            s.reference for s in fallback_bundle.references()
        ]

    def test_null_resource_attributes_survive_export(self, remote_bundle_json):
        """Only the bundle's own unset fields are left out of the export."""
        remote_bundle_json["entry"][0]["resource"]["deceasedBoolean"] = None
        bundle = ResourceBundle.model_validate(remote_bundle_json)

        data = bundle.to_dict()
        parsed = ResourceBundle.from_json(bundle.to_json())

        assert data["entry"][0]["resource"]["deceasedBoolean"] is None
        assert "fullUrl" not in data["entry"][0]
        assert parsed == bundle

    def test_untimestamped_bundle_omits_timestamp(self, fallback_bundle):
        """A bundle without a timestamp exports without the key."""
        bundle = fallback_bundle.model_copy(update={"timestamp": None})
        assert "timestamp" not in bundle.to_dict()

    def test_export_uses_fhir_names(self, fallback_bundle):
        """Export uses FHIR camelCase names."""
        data = fallback_bundle.to_dict()
        assert data["resourceType"] == "Bundle"
        assert data["entry"][0]["resource"]["resourceType"] == "Patient"
        assert "fullUrl" not in data["entry"][0]

    def test_write_json(self, fallback_bundle, tmp_path):
        """Written file parses back to the same bundle."""
        path = fallback_bundle.write_json(tmp_path / "out" / "fhir-resources.json")
        assert ResourceBundle.from_json(path.read_text()) == fallback_bundle

    def test_resource_requires_id(self):
        """Resources without an id are rejected."""
        with pytest.raises(ValidationError):
            ResourceBundle.from_resources([{"resourceType": "Patient"}])


class TestValidationReport:
    """Tests for ValidationReport invariants."""

    def test_from_issues_counts(self):
        """Counts are derived from issue severities."""
        issues = [
            ValidationIssue(severity=Severity.INFORMATION, code="informational", details="x"),
            ValidationIssue(severity=Severity.WARNING, code="not-found", details="y"),
            ValidationIssue(severity=Severity.WARNING, code="not-found", details="z"),
        ]
        report = ValidationReport.from_issues(issues, resource_count=4)

        assert report.valid is True
        assert report.errors == 0
        assert report.warnings == 2
        assert report.information == 1
        assert report.resource_count == 4
        assert len(report.by_severity(Severity.WARNING)) == 2

    def test_error_makes_report_invalid(self):
        """Any error makes the report invalid."""
        issues = [ValidationIssue(severity=Severity.ERROR, code="structure", details="bad")]
        report = ValidationReport.from_issues(issues, resource_count=1)
        assert report.valid is False
        assert report.errors == 1

    def test_inconsistent_validity_rejected(self):
        """Valid flag contradicting the error count is rejected."""
        with pytest.raises(ValidationError):
            ValidationReport(valid=True, errors=1)

    def test_issue_is_immutable(self):
        """Issues are frozen."""
        issue = ValidationIssue(severity=Severity.WARNING, code="c", details="d")
        with pytest.raises(ValidationError):
            issue.severity = Severity.ERROR


class TestPipelineSession:
    """Tests for stage/payload consistency of the session aggregate."""

    def test_initial_session(self):
        """Fresh session starts at input with no artifacts."""
        session = PipelineSession()
        assert session.stage == PipelineStage.INPUT
        assert session.extracted_text is None
        assert session.deployed is False
        assert session.error is None

    def test_process_stage_requires_text(self):
        """Process stage requires extracted text."""
        with pytest.raises(ValidationError):
            PipelineSession(stage=PipelineStage.PROCESS)

    def test_review_stage_requires_bundle(self):
        """Review stage requires a bundle."""
        text = ExtractedText(text="t", provenance=TextProvenance.UPLOADED)
        with pytest.raises(ValidationError):
            PipelineSession(stage=PipelineStage.REVIEW, extracted_text=text)

    def test_deployed_flag_matches_stage(self, fallback_bundle):
        """Deployed flag must match the deploy stage."""
        text = ExtractedText(text="t")
        with pytest.raises(ValidationError):
            PipelineSession(stage=PipelineStage.REVIEW, extracted_text=text, bundle=fallback_bundle, deployed=True)
        with pytest.raises(ValidationError):
            PipelineSession(stage=PipelineStage.DEPLOYED, extracted_text=text, bundle=fallback_bundle)

    def test_evolve_validates(self):
        """Evolve rejects invalid combinations."""
        session = PipelineSession()
        with pytest.raises(ValidationError):
            session.evolve(stage=PipelineStage.REVIEW)
        assert session.evolve(error="boom").error == "boom"

    def test_stage_labels(self):
        """Stages carry their display labels."""
        assert PipelineStage.INPUT.label == "Generate/Upload"
        assert PipelineStage.DEPLOYED.label == "Deploy"
