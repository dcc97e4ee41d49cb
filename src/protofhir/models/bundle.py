"""FHIR-style resource bundle models.

Resources keep every type-specific attribute verbatim (``extra = "allow"``),
so a bundle received from the remote synthesis service survives an
export/import cycle unchanged.
"""

import time
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, NamedTuple, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from .base import utcnow

BUNDLE_KIND_COLLECTION = "collection"


def new_bundle_id() -> str:
    """Generate a fresh bundle identifier."""
    return f"ai-generated-protocol-{int(time.time() * 1000)}-{uuid4().hex[:8]}"


class ReferenceSite(NamedTuple):
    """A ``reference`` string found inside a resource."""

    resource: "Resource"
    path: str
    reference: str


class CodingSite(NamedTuple):
    """A coding found inside a CodeableConcept of a resource."""

    resource: "Resource"
    path: str  # path to the CodeableConcept, e.g. MedicationRequest.medicationCodeableConcept
    system: Optional[str]
    code: Optional[str]


def _iter_objects(value: Any, path: tuple[str, ...]) -> Iterator[tuple[tuple[str, ...], dict]]:
    """Yield every nested JSON object with its key path (list indices dropped)."""
    if isinstance(value, dict):
        yield path, value
        for key, child in value.items():
            yield from _iter_objects(child, path + (key,))
    elif isinstance(value, list):
        for item in value:
            yield from _iter_objects(item, path)


class Resource(BaseModel):
    """Single typed clinical record (Patient, MedicationRequest, ...)."""

    resource_type: str = Field(..., alias="resourceType", min_length=1)
    id: str = Field(..., min_length=1, description="Unique within the bundle")

    class Config:
        extra = "allow"
        populate_by_name = True

    @property
    def attributes(self) -> dict[str, Any]:
        """Type-specific attribute set."""
        return dict(self.model_extra or {})

    @property
    def reference(self) -> str:
        """Relative FHIR reference pointing at this resource."""
        return f"{self.resource_type}/{self.id}"

    def iter_objects(self) -> Iterator[tuple[str, dict]]:
        """Yield (dotted path, object) for every nested object in the attributes."""
        for path, obj in _iter_objects(self.attributes, ()):
            if path:
                yield ".".join((self.resource_type,) + path), obj


class BundleEntry(BaseModel):
    """Bundle entry wrapping one resource."""

    full_url: Optional[str] = Field(None, alias="fullUrl")
    resource: Resource

    class Config:
        extra = "allow"
        populate_by_name = True


class ResourceBundle(BaseModel):
    """
    Container of typed clinical resources forming one logical unit.

    Invariants (checked by the validation stage, not enforced here so that
    invalid bundles can still be shown): resource ids are unique and every
    reference resolves inside the same bundle.
    """

    resource_type: str = Field(default="Bundle", alias="resourceType")
    id: str = Field(default_factory=new_bundle_id)
    type: str = Field(default=BUNDLE_KIND_COLLECTION, description="Bundle kind discriminator")
    timestamp: Optional[datetime] = Field(default_factory=utcnow)
    entry: list[BundleEntry] = Field(default_factory=list)

    class Config:
        extra = "allow"
        populate_by_name = True

    @classmethod
    def from_resources(
        cls,
        resources: list[dict[str, Any]],
        bundle_id: Optional[str] = None,
    ) -> "ResourceBundle":
        """Build a collection bundle from plain resource dicts."""
        data: dict[str, Any] = {"entry": [{"resource": r} for r in resources]}
        if bundle_id:
            data["id"] = bundle_id
        return cls.model_validate(data)

    @classmethod
    def from_json(cls, data: str | bytes) -> "ResourceBundle":
        """Parse an exported bundle."""
        return cls.model_validate_json(data)

    @property
    def resources(self) -> list[Resource]:
        return [e.resource for e in self.entry]

    @property
    def resource_count(self) -> int:
        return len(self.entry)

    @property
    def resource_types(self) -> list[str]:
        return [r.resource_type for r in self.resources]

    @property
    def resource_ids(self) -> list[str]:
        return [r.id for r in self.resources]

    def resolve(self, reference: str) -> Optional[Resource]:
        """Resolve a reference (``Type/id``, absolute URL or entry fullUrl).

        Args:
            reference: FHIR reference string.

        Returns:
            The referenced resource, or None when it is not in this bundle.
        """
        for entry in self.entry:
            if entry.full_url and entry.full_url == reference:
                return entry.resource

        parts = reference.rstrip("/").split("/")
        if len(parts) < 2:
            return None
        resource_type, resource_id = parts[-2], parts[-1]
        for resource in self.resources:
            if resource.resource_type == resource_type and resource.id == resource_id:
                return resource
        return None

    def references(self) -> list[ReferenceSite]:
        """Collect every reference string held by the bundle's resources."""
        sites = []
        for resource in self.resources:
            for path, obj in resource.iter_objects():
                reference = obj.get("reference")
                if isinstance(reference, str):
                    sites.append(ReferenceSite(resource, path, reference))
        return sites

    def codings(self) -> list[CodingSite]:
        """Collect every coding of every CodeableConcept in the bundle."""
        sites = []
        for resource in self.resources:
            for path, obj in resource.iter_objects():
                coding = obj.get("coding")
                if not isinstance(coding, list):
                    continue
                for item in coding:
                    if isinstance(item, dict):
                        sites.append(
                            CodingSite(resource, path, item.get("system"), item.get("code"))
                        )
        return sites

    def _unset_fields(self) -> Optional[dict[str, Any]]:
        # Only the bundle's own optional fields; resource attributes are exported verbatim.
        exclude: dict[str, Any] = {}
        if self.timestamp is None:
            exclude["timestamp"] = True
        entries = {i: {"full_url"} for i, e in enumerate(self.entry) if e.full_url is None}
        if entries:
            exclude["entry"] = entries
        return exclude or None

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible dict in FHIR field naming."""
        return self.model_dump(mode="json", by_alias=True, exclude=self._unset_fields())

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Canonical JSON export for download."""
        return self.model_dump_json(by_alias=True, exclude=self._unset_fields(), indent=indent)

    def write_json(self, path: Path) -> Path:
        """Write the exported bundle to a file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")
        return path
