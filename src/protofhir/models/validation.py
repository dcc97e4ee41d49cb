"""Validation issue and report models."""

from typing import Iterable

from pydantic import Field, model_validator

from .base import FrozenModel, Severity


class ValidationIssue(FrozenModel):
    """Single finding produced by the validation stage."""

    severity: Severity
    code: str = Field(..., description="Machine-readable issue code, e.g. 'not-found'")
    details: str = Field(..., description="Human-readable description")
    location: str = Field(default="Bundle", description="Path into the bundle")

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR


class ValidationReport(FrozenModel):
    """
    Outcome of one validation run.

    Created fresh on every run and superseded (never merged) by the next.
    ``valid`` is true iff there are no error-severity issues.
    """

    valid: bool
    issues: tuple[ValidationIssue, ...] = Field(default_factory=tuple)
    resource_count: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)
    warnings: int = Field(default=0, ge=0)
    information: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_validity(self) -> "ValidationReport":
        if self.valid != (self.errors == 0):
            raise ValueError("valid must be true iff the error count is zero")
        return self

    @classmethod
    def from_issues(
        cls,
        issues: Iterable[ValidationIssue],
        resource_count: int,
    ) -> "ValidationReport":
        """Build a report, deriving counts and validity from the issues."""
        issues = tuple(issues)
        counts = {severity: 0 for severity in Severity}
        for issue in issues:
            counts[issue.severity] += 1

        return cls(
            valid=counts[Severity.ERROR] == 0,
            issues=issues,
            resource_count=resource_count,
            errors=counts[Severity.ERROR],
            warnings=counts[Severity.WARNING],
            information=counts[Severity.INFORMATION],
        )

    def by_severity(self, severity: Severity) -> list[ValidationIssue]:
        """Issues of one severity, in report order."""
        return [issue for issue in self.issues if issue.severity == severity]
