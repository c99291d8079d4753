"""
Unit tests for the Manifest aggregate.

Tests catalog ordering, group ceilings, wave scheduling, datastore mapping
lifecycle, migrations and the all-or-nothing behaviour of failed calls.
"""

import logging
from datetime import timedelta

import pytest

from update_metadata.catalog import Update
from update_metadata.datastore import MigrationStep
from update_metadata.errors import (
    DuplicateUpdateError,
    InvalidBoundError,
    ManifestValidationError,
    MissingStartTimeError,
    UpdateNotFoundError,
    WaveOrderingViolationError,
)
from update_metadata.manifest import Manifest
from update_metadata.versions import DataStoreVersion, SemVer
from update_metadata.waves import WaveSchedule


HOUR = timedelta(hours=1)


def versions_of(manifest):
    return [str(u.version) for u in manifest.updates]


def snapshot(manifest):
    """Deep copy for before/after comparisons."""
    return manifest.copy()


# ============================================================================
# Catalog
# ============================================================================


class TestAddUpdate:
    """Tests for Manifest.add_update."""

    def test_empty_manifest(self):
        manifest = Manifest.empty()

        assert len(manifest) == 0
        assert manifest.max_version_of_first() is None
        assert len(manifest.datastore_versions) == 0
        assert len(manifest.migrations) == 0

    def test_first_update_has_highest_version(self, images):
        manifest = Manifest()
        for version in ["1.0.0", "1.3.0", "1.1.0", "0.9.9", "1.2.0", "1.3.0-rc.2"]:
            manifest.add_update(version, None, "1.0", "x86_64", "aws-k8s", images)

        assert manifest.max_version_of_first() == SemVer(1, 3, 0)
        assert versions_of(manifest) == [
            "1.3.0", "1.3.0-rc.2", "1.2.0", "1.1.0", "1.0.0", "0.9.9",
        ]

    def test_returns_new_record(self, images):
        manifest = Manifest()

        update = manifest.add_update("1.2.0", "1.3.0", "v1.0", "x86_64", "aws-k8s", images)

        assert isinstance(update, Update)
        assert update.version == SemVer(1, 2, 0)
        assert update.max_version == SemVer(1, 3, 0)
        assert update.datastore_version == DataStoreVersion(1, 0)
        assert update.images == images
        assert len(update.waves) == 0

    def test_duplicate_rejected_without_changes(self, manifest, images):
        before = snapshot(manifest)

        with pytest.raises(DuplicateUpdateError):
            manifest.add_update("1.2.0", "9.0.0", "2.0", "x86_64", "aws-k8s", images)

        assert manifest == before
        assert manifest.ceiling("aws-k8s", "x86_64") == SemVer(1, 2, 4)
        assert manifest.datastore_versions.get(SemVer(1, 2, 0)) == DataStoreVersion(1, 0)

    def test_records_datastore_mapping(self, manifest):
        assert dict(manifest.datastore_versions.items()) == {
            SemVer(1, 2, 0): DataStoreVersion(1, 0),
            SemVer(1, 2, 3): DataStoreVersion(1, 1),
            SemVer(1, 2, 4): DataStoreVersion(1, 1),
        }


class TestGroupCeiling:
    """Tests for the shared (variant, arch) max version."""

    def test_increasing_ceilings_applied_to_whole_group(self, images):
        manifest = Manifest()
        manifest.add_update("1.2.0", "1.2.3", "1.0", "x86_64", "aws-k8s", images)
        manifest.add_update("1.2.3", "1.2.3", "1.0", "x86_64", "aws-k8s", images)
        manifest.add_update("1.2.4", "1.2.4", "1.0", "x86_64", "aws-k8s", images)

        assert [str(u.max_version) for u in manifest.updates] == ["1.2.4"] * 3
        assert manifest.ceiling("aws-k8s", "x86_64") == SemVer(1, 2, 4)

    def test_new_version_lifts_group_ceiling(self, manifest):
        assert [str(u.max_version) for u in manifest.find_updates("aws-k8s", "x86_64", "1.2.0")] == ["1.2.4"]

    def test_supplied_ceiling_below_version_is_lifted(self, images, caplog):
        manifest = Manifest()

        with caplog.at_level(logging.WARNING, logger="update_metadata.manifest"):
            update = manifest.add_update("1.2.0", "1.1.0", "1.0", "x86_64", "aws-k8s", images)

        assert update.max_version == SemVer(1, 2, 0)
        assert "below update version" in caplog.text
        manifest.validate()

    def test_lower_supplied_ceiling_does_not_lower_group(self, images):
        manifest = Manifest()
        manifest.add_update("1.2.0", "1.5.0", "1.0", "x86_64", "aws-k8s", images)

        update = manifest.add_update("1.3.0", "1.3.0", "1.0", "x86_64", "aws-k8s", images)

        assert update.max_version == SemVer(1, 5, 0)
        assert {str(u.max_version) for u in manifest} == {"1.5.0"}

    def test_groups_are_independent(self, manifest):
        assert manifest.ceiling("aws-dev", "x86_64") == SemVer(1, 2, 3)
        assert manifest.ceiling("aws-k8s", "x86_64") == SemVer(1, 2, 4)
        assert manifest.ceiling("aws-k8s", "aarch64") is None


class TestUpdateMaxVersion:
    """Tests for Manifest.update_max_version."""

    def test_raises_every_group(self, manifest):
        touched = manifest.update_max_version("2.0.0")

        assert touched == 3
        assert {str(u.max_version) for u in manifest} == {"2.0.0"}

    def test_filters_by_variant(self, manifest):
        touched = manifest.update_max_version("2.0.0", variant="aws-dev")

        assert touched == 1
        assert manifest.ceiling("aws-dev", "x86_64") == SemVer(2, 0, 0)
        assert manifest.ceiling("aws-k8s", "x86_64") == SemVer(1, 2, 4)

    def test_filters_by_arch(self, manifest, images):
        manifest.add_update("1.2.4", None, "1.1", "aarch64", "aws-k8s", images)

        manifest.update_max_version("2.0.0", arch="aarch64")

        assert manifest.ceiling("aws-k8s", "aarch64") == SemVer(2, 0, 0)
        assert manifest.ceiling("aws-k8s", "x86_64") == SemVer(1, 2, 4)

    def test_lower_value_has_no_effect(self, manifest):
        before = snapshot(manifest)

        manifest.update_max_version("1.0.0")

        assert manifest == before
        assert manifest.ceiling("aws-k8s", "x86_64") == SemVer(1, 2, 4)

    def test_lower_value_is_warned(self, manifest, caplog):
        with caplog.at_level(logging.WARNING, logger="update_metadata.manifest"):
            manifest.update_max_version("1.0.0", variant="aws-k8s")

        assert "below current ceiling 1.2.4" in caplog.text

    def test_no_matching_group_is_noop(self, manifest):
        before = snapshot(manifest)

        assert manifest.update_max_version("2.0.0", variant="missing") == 0
        assert manifest == before

    def test_empty_manifest_is_noop(self):
        assert Manifest().update_max_version("2.0.0") == 0


# ============================================================================
# Removal
# ============================================================================


class TestRemoveUpdate:
    """Tests for Manifest.remove_update."""

    def test_removes_matching_record(self, manifest):
        removed = manifest.remove_update("aws-k8s", "x86_64", "1.2.4")

        assert removed == 1
        assert versions_of(manifest) == ["1.2.3", "1.2.0"]
        assert manifest.max_version_of_first() == SemVer(1, 2, 3)

    def test_missing_update_is_noop(self, manifest):
        before = snapshot(manifest)

        assert manifest.remove_update("aws-k8s", "x86_64", "9.9.9") == 0
        assert manifest.remove_update("aws-k8s", "x86_64", "9.9.9", cleanup=True) == 0
        assert manifest == before

    def test_never_lowers_ceiling(self, manifest):
        manifest.remove_update("aws-k8s", "x86_64", "1.2.4")

        assert manifest.ceiling("aws-k8s", "x86_64") == SemVer(1, 2, 4)
        assert manifest.find_updates("aws-k8s", "x86_64", "1.2.0")[0].max_version == SemVer(1, 2, 4)

    def test_emptied_group_forgets_its_ceiling(self, manifest, images):
        manifest.remove_update("aws-dev", "x86_64", "1.2.3")

        assert manifest.ceiling("aws-dev", "x86_64") is None
        update = manifest.add_update("1.0.0", None, "1.0", "x86_64", "aws-dev", images)
        assert update.max_version == SemVer(1, 0, 0)

    def test_without_cleanup_mapping_survives(self, manifest):
        manifest.remove_update("aws-dev", "x86_64", "1.2.3")

        assert manifest.datastore_versions.get(SemVer(1, 2, 3)) == DataStoreVersion(1, 1)

    def test_cleanup_removes_unreferenced_mapping(self, manifest):
        manifest.remove_update("aws-dev", "x86_64", "1.2.3", cleanup=True)

        assert SemVer(1, 2, 3) not in manifest.datastore_versions
        assert SemVer(1, 2, 4) in manifest.datastore_versions

    def test_cleanup_keeps_mapping_still_referenced(self, manifest, images, caplog):
        manifest.add_update("1.2.3", None, "1.1", "x86_64", "aws-k8s", images)

        with caplog.at_level(logging.WARNING, logger="update_metadata.manifest"):
            manifest.remove_update("aws-dev", "x86_64", "1.2.3", cleanup=True)

        assert manifest.datastore_versions.get(SemVer(1, 2, 3)) == DataStoreVersion(1, 1)
        assert "Cleanup skipped" in caplog.text

    def test_cleanup_leaves_migrations_alone(self, manifest):
        steps = [MigrationStep(DataStoreVersion(1, 0), DataStoreVersion(1, 1), "migrate_v1.1_foo")]
        manifest.set_migrations(steps)

        manifest.remove_update("aws-k8s", "x86_64", "1.2.0", cleanup=True)

        assert SemVer(1, 2, 0) not in manifest.datastore_versions
        assert list(manifest.migrations) == steps


# ============================================================================
# Waves
# ============================================================================


class TestAddWave:
    """Tests for Manifest.add_wave."""

    def test_adds_wave_to_matching_update(self, manifest, start_time):
        count = manifest.add_wave("aws-k8s", "x86_64", "1.2.4", 512, start_time)

        assert count == 1
        waves = manifest.find_updates("aws-k8s", "x86_64", "1.2.4")[0].waves
        assert waves.get(512) == start_time
        assert len(manifest.find_updates("aws-k8s", "x86_64", "1.2.0")[0].waves) == 0

    def test_later_bound_starting_earlier_fails(self, manifest, start_time):
        manifest.add_wave("aws-k8s", "x86_64", "1.2.4", 1024, start_time)
        before = snapshot(manifest)

        with pytest.raises(WaveOrderingViolationError) as exc_info:
            manifest.add_wave("aws-k8s", "x86_64", "1.2.4", 1536, start_time - HOUR)

        assert manifest == before
        error = exc_info.value
        assert (error.variant, error.arch, error.version) == ("aws-k8s", "x86_64", SemVer(1, 2, 4))
        assert "aws-k8s-x86_64-1.2.4" in str(error)
        assert "1536" in str(error)

    def test_missing_start_time(self, manifest):
        with pytest.raises(MissingStartTimeError) as exc_info:
            manifest.add_wave("aws-k8s", "x86_64", "1.2.4", 512, None)

        assert exc_info.value.bound == 512

    def test_unknown_update(self, manifest, start_time):
        with pytest.raises(UpdateNotFoundError) as exc_info:
            manifest.add_wave("aws-k8s", "aarch64", "1.2.4", 512, start_time)

        assert exc_info.value.arch == "aarch64"

    def test_invalid_bound_carries_update_context(self, manifest, start_time):
        with pytest.raises(InvalidBoundError) as exc_info:
            manifest.add_wave("aws-k8s", "x86_64", "1.2.4", 2048, start_time)

        assert exc_info.value.bound == 2048
        assert exc_info.value.variant == "aws-k8s"
        assert "aws-k8s-x86_64-1.2.4" in str(exc_info.value)

    def test_failure_on_any_match_changes_nothing(self, images, start_time):
        version = SemVer(1, 0, 0)
        clean = Update("aws-k8s", "x86_64", version, version, DataStoreVersion(1, 0), images)
        conflicting = Update(
            "aws-k8s", "x86_64", version, version, DataStoreVersion(1, 0), images,
            waves=WaveSchedule({1024: start_time}),
        )
        manifest = Manifest(updates=[clean, conflicting], datastore_versions={version: DataStoreVersion(1, 0)})

        with pytest.raises(WaveOrderingViolationError):
            manifest.add_wave("aws-k8s", "x86_64", "1.0.0", 1536, start_time - HOUR)

        assert [len(u.waves) for u in manifest] == [0, 1]

    def test_reports_every_match(self, images, start_time):
        version = SemVer(1, 0, 0)
        manifest = Manifest(updates=[
            Update("aws-k8s", "x86_64", version, version, DataStoreVersion(1, 0), images),
            Update("aws-k8s", "x86_64", version, version, DataStoreVersion(1, 0), images),
        ])

        assert manifest.add_wave("aws-k8s", "x86_64", "1.0.0", 0, start_time) == 2
        assert [len(u.waves) for u in manifest] == [1, 1]


class TestRemoveWave:
    """Tests for Manifest.remove_wave."""

    def test_removes_wave(self, manifest, start_time):
        manifest.add_wave("aws-k8s", "x86_64", "1.2.4", 0, start_time)
        manifest.add_wave("aws-k8s", "x86_64", "1.2.4", 512, start_time + HOUR)

        assert manifest.remove_wave("aws-k8s", "x86_64", "1.2.4", 0) == 1
        waves = manifest.find_updates("aws-k8s", "x86_64", "1.2.4")[0].waves
        assert [w.bound for w in waves] == [512]

    def test_missing_wave_or_update_is_noop(self, manifest):
        before = snapshot(manifest)

        assert manifest.remove_wave("aws-k8s", "x86_64", "1.2.4", 512) == 0
        assert manifest.remove_wave("nope", "x86_64", "1.2.4", 512) == 0
        assert manifest == before


# ============================================================================
# Datastore mapping and migrations
# ============================================================================


class TestDatastoreMapping:
    """Tests for datastore version consistency."""

    def test_add_version_mapping_syncs_records(self, manifest):
        previous = manifest.add_version_mapping("1.2.3", "v1.2")

        assert previous == DataStoreVersion(1, 1)
        assert manifest.find_updates("aws-dev", "x86_64", "1.2.3")[0].datastore_version == DataStoreVersion(1, 2)
        assert manifest.find_updates("aws-k8s", "x86_64", "1.2.4")[0].datastore_version == DataStoreVersion(1, 1)
        manifest.validate()

    def test_mapping_without_updates(self):
        manifest = Manifest()

        assert manifest.add_version_mapping("2.0.0", "2.0") is None
        assert manifest.datastore_versions.get(SemVer(2, 0, 0)) == DataStoreVersion(2, 0)

    def test_conflicting_add_is_last_writer_wins(self, manifest, images, caplog):
        with caplog.at_level(logging.WARNING, logger="update_metadata.datastore"):
            manifest.add_update("1.2.0", None, "1.1", "x86_64", "aws-dev", images)

        assert "replaced old mapping" in caplog.text
        assert manifest.datastore_versions.get(SemVer(1, 2, 0)) == DataStoreVersion(1, 1)
        assert {str(u.datastore_version) for u in manifest.find_updates("aws-k8s", "x86_64", "1.2.0")} == {"1.1"}
        manifest.validate()


class TestSetMigrations:
    """Tests for Manifest.set_migrations."""

    def test_replaces_existing_steps(self, manifest):
        v10, v11, v12 = DataStoreVersion(1, 0), DataStoreVersion(1, 1), DataStoreVersion(1, 2)
        manifest.set_migrations([MigrationStep(v10, v11, "old")])

        new_steps = [MigrationStep(v11, v12, "b"), MigrationStep(v11, v12, "a")]
        manifest.set_migrations(new_steps)

        assert list(manifest.migrations) == new_steps

    def test_empty_list_clears(self, manifest):
        manifest.set_migrations([MigrationStep(DataStoreVersion(1, 0), DataStoreVersion(1, 1), "x")])

        manifest.set_migrations([])

        assert len(manifest.migrations) == 0


# ============================================================================
# Validation
# ============================================================================


class TestValidation:
    """Tests for Manifest.problems and Manifest.validate."""

    def test_consistent_manifest(self, manifest, start_time):
        manifest.add_wave("aws-k8s", "x86_64", "1.2.4", 0, start_time)

        assert manifest.problems() == []
        manifest.validate()

    def test_reports_every_broken_invariant(self, images, start_time):
        low, high = SemVer(1, 0, 0), SemVer(2, 0, 0)
        manifest = Manifest(
            updates=[
                Update("aws-k8s", "x86_64", low, low, DataStoreVersion(1, 0), images),
                Update(
                    "aws-k8s", "x86_64", high, SemVer(1, 5, 0), DataStoreVersion(1, 0), images,
                    waves=WaveSchedule({0: start_time + HOUR, 512: start_time}),
                ),
            ],
            datastore_versions={low: DataStoreVersion(1, 1)},
        )

        with pytest.raises(ManifestValidationError) as exc_info:
            manifest.validate()

        problems = exc_info.value.problems
        assert any("listed after lower version" in p for p in problems)
        assert any("above its max version" in p for p in problems)
        assert any("uses 1.0.0" in p for p in problems)
        assert any("starts before wave 0" in p for p in problems)
        assert any("no datastore mapping for version 2.0.0" in p for p in problems)
        assert any("needs datastore 1.0" in p for p in problems)


class TestCopy:
    """Tests for Manifest.copy."""

    def test_copy_is_independent(self, manifest, start_time):
        clone = manifest.copy()

        clone.add_wave("aws-k8s", "x86_64", "1.2.4", 0, start_time)
        clone.update_max_version("3.0.0")

        assert manifest != clone
        assert manifest.ceiling("aws-k8s", "x86_64") == SemVer(1, 2, 4)
        assert len(manifest.find_updates("aws-k8s", "x86_64", "1.2.4")[0].waves) == 0
