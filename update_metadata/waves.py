"""
Wave scheduling for a single update.

A wave is a (bound, start_time) pair: devices whose seed falls below the
bound become eligible for the update once start_time has passed. Waves of
one update are kept sorted by bound, and start times never decrease as the
bound grows. Because the schedule is always sorted and always monotonic,
validating a new wave only needs its immediate neighbours by bound.
"""

import bisect
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Tuple

from update_metadata.errors import InvalidBoundError, WaveOrderingViolationError

# Bounds partition the fleet into 2048 seeds
MAX_BOUND = 2048


def normalize_start_time(start_time: datetime) -> datetime:
    """Return start_time as an aware UTC datetime; naive values are taken as UTC."""
    if start_time.tzinfo is None:
        return start_time.replace(tzinfo=timezone.utc)
    return start_time.astimezone(timezone.utc)


@dataclass(frozen=True)
class Wave:
    """One rollout cohort."""

    bound: int
    start_time: datetime


class WaveSchedule:
    """
    Waves of one update, sorted by bound with non-decreasing start times.

    Every mutating method validates before it changes anything, so a
    failed call leaves the schedule as it was.
    """

    def __init__(self, waves: Optional[Dict[int, datetime]] = None):
        # Loaded waves are taken as-is; Manifest.validate reports problems
        self._starts: Dict[int, datetime] = {
            bound: normalize_start_time(start_time)
            for bound, start_time in (waves or {}).items()
        }
        self._bounds: List[int] = sorted(self._starts)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._bounds)

    def __iter__(self) -> Iterator[Wave]:
        for bound in self._bounds:
            yield Wave(bound, self._starts[bound])

    def __contains__(self, bound: object) -> bool:
        return bound in self._starts

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WaveSchedule):
            return NotImplemented
        return self._starts == other._starts

    def __repr__(self) -> str:
        return f"WaveSchedule({self.as_dict()!r})"

    def get(self, bound: int) -> Optional[datetime]:
        """Start time of the wave at bound, or None."""
        return self._starts.get(bound)

    def as_dict(self) -> Dict[int, datetime]:
        """Waves as an ordered {bound: start_time} dict."""
        return {bound: self._starts[bound] for bound in self._bounds}

    def copy(self) -> "WaveSchedule":
        clone = WaveSchedule()
        clone._bounds = list(self._bounds)
        clone._starts = dict(self._starts)
        return clone

    def neighbours(self, bound: int) -> Tuple[Optional[Wave], Optional[Wave]]:
        """
        Closest existing waves strictly below and strictly above bound.

        A wave already at bound is skipped so that it can be overwritten.
        """
        lower_index = bisect.bisect_left(self._bounds, bound)
        upper_index = bisect.bisect_right(self._bounds, bound)

        previous = None
        if lower_index > 0:
            prev_bound = self._bounds[lower_index - 1]
            previous = Wave(prev_bound, self._starts[prev_bound])

        following = None
        if upper_index < len(self._bounds):
            next_bound = self._bounds[upper_index]
            following = Wave(next_bound, self._starts[next_bound])

        return previous, following

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def check(self, bound: int, start_time: datetime) -> datetime:
        """
        Validate a wave without inserting it.

        Returns:
            The normalized (UTC) start time

        Raises:
            InvalidBoundError: If bound is outside [0, MAX_BOUND)
            WaveOrderingViolationError: If the wave starts before the previous
                bound or after the next one
        """
        if isinstance(bound, bool) or not isinstance(bound, int):
            raise TypeError(f"Wave bound must be an int, got {type(bound).__name__}")
        if not 0 <= bound < MAX_BOUND:
            raise InvalidBoundError(bound, MAX_BOUND)

        start_time = normalize_start_time(start_time)
        previous, following = self.neighbours(bound)

        if previous is not None and start_time < previous.start_time:
            raise WaveOrderingViolationError(
                bound, start_time, previous.bound, previous.start_time
            )
        if following is not None and start_time > following.start_time:
            raise WaveOrderingViolationError(
                bound, start_time, following.bound, following.start_time
            )
        return start_time

    def add(self, bound: int, start_time: datetime) -> Optional[datetime]:
        """
        Insert a wave, or move the start time of the wave already at bound.

        Returns:
            The start time that was replaced, or None for a new bound
        """
        start_time = self.check(bound, start_time)
        replaced = self._starts.get(bound)
        if replaced is None:
            bisect.insort(self._bounds, bound)
        self._starts[bound] = start_time
        return replaced

    def remove(self, bound: int) -> bool:
        """
        Remove the wave at bound.

        Dropping a wave cannot break ordering of the rest, so nothing is
        re-validated.

        Returns:
            True if a wave was removed
        """
        if bound not in self._starts:
            return False
        del self._starts[bound]
        self._bounds.remove(bound)
        return True

    def ordering_problems(self) -> List[str]:
        """Describe every bound or ordering violation (empty when consistent)."""
        problems = []
        previous: Optional[Wave] = None
        for wave in self:
            if not 0 <= wave.bound < MAX_BOUND:
                problems.append(f"wave bound {wave.bound} is outside [0, {MAX_BOUND})")
            if previous is not None and wave.start_time < previous.start_time:
                problems.append(
                    f"wave {wave.bound} starts before wave {previous.bound}"
                )
            previous = wave
        return problems
