"""Validation Stage - Structural checks on synthesized bundles.

A fixed, minimal rule set (not a FHIR schema validator):
1. information: resource count
2. error: bundle type is not "collection"
3. error: duplicate resource ids
4. error: references that do not resolve inside the bundle
5. warning: codings whose code system is not recognized

The validator never raises. A rule that blows up turns the whole run into a
single error-severity "validation-failed" report.
"""

import logging
from collections import Counter
from typing import Callable, Iterable, Optional

from protofhir.exceptions import ValidationInternalError
from protofhir.models import (
    BUNDLE_KIND_COLLECTION,
    ResourceBundle,
    Severity,
    ValidationIssue,
    ValidationReport,
)

logger = logging.getLogger(__name__)

ValidationRule = Callable[[ResourceBundle], Iterable[ValidationIssue]]

# Code systems accepted without a warning
KNOWN_CODE_SYSTEMS: frozenset[str] = frozenset(
    {
        "http://snomed.info/sct",
        "http://loinc.org",
        "http://www.nlm.nih.gov/research/umls/rxnorm",
        "http://hl7.org/fhir/sid/icd-10",
        "http://hl7.org/fhir/sid/icd-10-cm",
        "http://www.ama-assn.org/go/cpt",
        "urn:oid:2.16.840.1.113883.6.285",
        "http://ohdsi.org/omop/concept",
        "http://www.whocc.no/atc",
        "http://unitsofmeasure.org",
    }
)
KNOWN_CODE_SYSTEM_PREFIXES: tuple[str, ...] = (
    "http://terminology.hl7.org/CodeSystem/",
    "http://hl7.org/fhir/",
)


def is_known_code_system(
    system: str,
    known: frozenset[str] = KNOWN_CODE_SYSTEMS,
    prefixes: tuple[str, ...] = KNOWN_CODE_SYSTEM_PREFIXES,
) -> bool:
    """Check whether a coding system URI is recognized."""
    return system in known or system.startswith(prefixes)


def check_resource_count(bundle: ResourceBundle) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            severity=Severity.INFORMATION,
            code="informational",
            details=f"Resource bundle contains {bundle.resource_count} FHIR resources",
            location="Bundle",
        )
    ]


def check_bundle_type(bundle: ResourceBundle) -> list[ValidationIssue]:
    if bundle.type == BUNDLE_KIND_COLLECTION:
        return []
    return [
        ValidationIssue(
            severity=Severity.ERROR,
            code="structure",
            details=f'Bundle type "{bundle.type}" is not "{BUNDLE_KIND_COLLECTION}"',
            location="Bundle.type",
        )
    ]


def check_unique_ids(bundle: ResourceBundle) -> list[ValidationIssue]:
    counts = Counter(bundle.resource_ids)
    issues = []
    reported = set()
    for resource in bundle.resources:
        if counts[resource.id] > 1 and resource.id not in reported:
            reported.add(resource.id)
            issues.append(
                ValidationIssue(
                    severity=Severity.ERROR,
                    code="duplicate",
                    details=f'Resource id "{resource.id}" is used {counts[resource.id]} times',
                    location=f"{resource.resource_type}.id",
                )
            )
    return issues


def check_references(bundle: ResourceBundle) -> list[ValidationIssue]:
    issues = []
    for site in bundle.references():
        if bundle.resolve(site.reference) is None:
            issues.append(
                ValidationIssue(
                    severity=Severity.ERROR,
                    code="not-found",
                    details=f'Reference "{site.reference}" does not resolve within the bundle',
                    location=site.path,
                )
            )
    return issues


class BundleValidator:
    """Produces a ValidationReport for a bundle.

    Idempotent: validating an unchanged bundle twice yields equal reports.
    """

    def __init__(
        self,
        known_code_systems: Optional[Iterable[str]] = None,
        extra_rules: Optional[list[ValidationRule]] = None,
    ):
        """Initialize validator.

        Args:
            known_code_systems: Additional code system URIs to accept.
            extra_rules: Rules appended after the built-in ones.
        """
        self.known_code_systems = KNOWN_CODE_SYSTEMS | frozenset(known_code_systems or ())
        self.rules: list[ValidationRule] = [
            check_resource_count,
            check_bundle_type,
            check_unique_ids,
            check_references,
            self.check_code_systems,
        ]
        self.rules.extend(extra_rules or [])

    def check_code_systems(self, bundle: ResourceBundle) -> list[ValidationIssue]:
        issues = []
        for site in bundle.codings():
            if site.system and not is_known_code_system(site.system, self.known_code_systems):
                issues.append(
                    ValidationIssue(
                        severity=Severity.WARNING,
                        code="not-found",
                        details=f'CodeSystem "{site.system}" not found',
                        location=site.path,
                    )
                )
        return issues

    def validate(self, bundle: ResourceBundle) -> ValidationReport:
        """Validate a bundle.

        Args:
            bundle: Bundle to inspect.

        Returns:
            Fresh ValidationReport; valid iff it holds no error issues.
        """
        try:
            issues = self._run_rules(bundle)
            report = ValidationReport.from_issues(issues, resource_count=bundle.resource_count)
        except ValidationInternalError as exc:
            logger.error("Validation of bundle failed: %s", exc.message)
            return internal_error_report(exc.message)
        except Exception as exc:
            logger.exception("Validation report could not be assembled")
            return internal_error_report(str(exc) or type(exc).__name__)

        logger.info(
            "Validated bundle %s: valid=%s errors=%d warnings=%d information=%d",
            bundle.id,
            report.valid,
            report.errors,
            report.warnings,
            report.information,
        )
        return report

    def _run_rules(self, bundle: ResourceBundle) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        for rule in self.rules:
            try:
                produced = list(rule(bundle))
            except Exception as exc:
                raise ValidationInternalError(str(exc) or type(exc).__name__) from exc
            for issue in produced:
                if not isinstance(issue, ValidationIssue):
                    raise ValidationInternalError(
                        f"Rule {getattr(rule, '__name__', rule)!s} returned "
                        f"{type(issue).__name__} instead of ValidationIssue"
                    )
            issues.extend(produced)
        return issues


def internal_error_report(message: str) -> ValidationReport:
    """Report used when validation itself could not run."""
    return ValidationReport.from_issues(
        [
            ValidationIssue(
                severity=Severity.ERROR,
                code="validation-failed",
                details=f"Validation failed: {message}",
                location="Bundle",
            )
        ],
        resource_count=0,
    )
