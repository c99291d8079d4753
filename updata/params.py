"""
Click parameter types for versions and timestamps.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import click

from update_metadata.versions import DataStoreVersion, SemVer


class SemVerParamType(click.ParamType):
    """Image version, e.g. 1.2.3."""

    name = "version"

    def convert(self, value: Any, param: Optional[click.Parameter], ctx: Optional[click.Context]) -> SemVer:
        if isinstance(value, SemVer):
            return value
        try:
            return SemVer.parse(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


class DataStoreVersionParamType(click.ParamType):
    """Datastore version, e.g. 1.0 or v1.0."""

    name = "data-version"

    def convert(self, value: Any, param: Optional[click.Parameter], ctx: Optional[click.Context]) -> DataStoreVersion:
        if isinstance(value, DataStoreVersion):
            return value
        try:
            return DataStoreVersion.parse(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


class TimestampParamType(click.ParamType):
    """RFC 3339 timestamp, e.g. 2020-02-05T18:00:00Z. Values without an offset are UTC."""

    name = "timestamp"

    def convert(self, value: Any, param: Optional[click.Parameter], ctx: Optional[click.Context]) -> datetime:
        if isinstance(value, datetime):
            parsed = value
        else:
            try:
                parsed = datetime.fromisoformat(str(value).strip())
            except ValueError:
                self.fail(f"Invalid timestamp: {value!r} (expected e.g. 2020-02-05T18:00:00Z)", param, ctx)

        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)


SEMVER = SemVerParamType()
DATA_VERSION = DataStoreVersionParamType()
TIMESTAMP = TimestampParamType()
