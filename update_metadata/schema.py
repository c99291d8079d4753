"""
Pydantic models for the manifest JSON document.

The document models validate shape and parse versions; conversion to and
from the Manifest domain objects happens here too, so storage only deals
with text and files.

Layout:

    {
      "updates": [{"variant", "arch", "version", "max_version",
                   "datastore_version", "images": {"root", "boot", "hash"},
                   "waves": {"<bound>": "<RFC 3339 UTC>"}}],
      "migrations": [{"from", "to", "name"}],
      "datastore_versions": {"<image version>": "<datastore version>"}
    }
"""

from datetime import datetime
from typing import Annotated, Dict, List

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
    field_validator,
)

from update_metadata.catalog import Images, Update
from update_metadata.datastore import MigrationStep
from update_metadata.manifest import Manifest
from update_metadata.versions import DataStoreVersion, SemVer
from update_metadata.waves import WaveSchedule, normalize_start_time


def format_timestamp(value: datetime) -> str:
    """RFC 3339 UTC with a 'Z' suffix."""
    return normalize_start_time(value).isoformat().replace("+00:00", "Z")


SemVerField = Annotated[
    SemVer,
    PlainValidator(SemVer.coerce),
    PlainSerializer(str, return_type=str),
]

DataStoreVersionField = Annotated[
    DataStoreVersion,
    PlainValidator(DataStoreVersion.coerce),
    PlainSerializer(str, return_type=str),
]

Timestamp = Annotated[
    datetime,
    PlainSerializer(format_timestamp, return_type=str),
]


# ============================================================================
# Document Models
# ============================================================================


class ImagesDocument(BaseModel):
    """Artifact target names of one update."""

    model_config = ConfigDict(extra="forbid")

    root: str = Field(..., description="Root filesystem image target")
    boot: str = Field(..., description="Boot image target")
    hash: str = Field(..., description="Verity hash image target")


class UpdateDocument(BaseModel):
    """One entry of the 'updates' list."""

    model_config = ConfigDict(extra="forbid")

    variant: str = Field(..., min_length=1, description="Image variant, e.g. aws-k8s-1.15")
    arch: str = Field(..., min_length=1, description="Architecture, e.g. x86_64")
    version: SemVerField = Field(..., description="Image version")
    max_version: SemVerField = Field(..., description="Group-wide version ceiling")
    datastore_version: DataStoreVersionField = Field(
        ..., description="Datastore version the image needs"
    )
    images: ImagesDocument
    waves: Dict[int, Timestamp] = Field(
        default_factory=dict, description="Wave bound to start time"
    )

    @classmethod
    def from_update(cls, update: Update) -> "UpdateDocument":
        return cls(
            variant=update.variant,
            arch=update.arch,
            version=update.version,
            max_version=update.max_version,
            datastore_version=update.datastore_version,
            images=ImagesDocument(
                root=update.images.root,
                boot=update.images.boot,
                hash=update.images.hash,
            ),
            waves=update.waves.as_dict(),
        )

    def to_update(self) -> Update:
        return Update(
            variant=self.variant,
            arch=self.arch,
            version=self.version,
            max_version=self.max_version,
            datastore_version=self.datastore_version,
            images=Images(root=self.images.root, boot=self.images.boot, hash=self.images.hash),
            waves=WaveSchedule(self.waves),
        )


class MigrationStepDocument(BaseModel):
    """One entry of the 'migrations' list."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    from_version: DataStoreVersionField = Field(..., alias="from")
    to_version: DataStoreVersionField = Field(..., alias="to")
    name: str = Field(..., min_length=1, description="Migration name")


class ManifestDocument(BaseModel):
    """The whole manifest file."""

    model_config = ConfigDict(extra="forbid")

    updates: List[UpdateDocument] = Field(default_factory=list)
    migrations: List[MigrationStepDocument] = Field(default_factory=list)
    datastore_versions: Dict[str, DataStoreVersionField] = Field(
        default_factory=dict, description="Image version to datastore version"
    )

    @field_validator("datastore_versions")
    @classmethod
    def keys_must_be_versions(cls, v: Dict[str, DataStoreVersion]) -> Dict[str, DataStoreVersion]:
        for key in v:
            SemVer.parse(key)
        return v

    @classmethod
    def from_manifest(cls, manifest: Manifest) -> "ManifestDocument":
        return cls(
            updates=[UpdateDocument.from_update(u) for u in manifest.updates],
            migrations=[
                MigrationStepDocument(
                    from_version=step.from_version,
                    to_version=step.to_version,
                    name=step.name,
                )
                for step in manifest.migrations
            ],
            datastore_versions={
                str(version): datastore_version
                for version, datastore_version in manifest.datastore_versions.items()
            },
        )

    def to_manifest(self) -> Manifest:
        return Manifest(
            updates=[u.to_update() for u in self.updates],
            datastore_versions={
                SemVer.parse(key): value
                for key, value in self.datastore_versions.items()
            },
            migrations=[
                MigrationStep(step.from_version, step.to_version, step.name)
                for step in self.migrations
            ],
        )

    def to_json(self, indent: int = 2) -> str:
        return self.model_dump_json(indent=indent, by_alias=True)
