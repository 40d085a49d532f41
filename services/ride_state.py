"""
Where an entered reward's ride stands at a given instant.

Quote and lock both need the same view: elapsed fraction, the crash point
(stored at opt-in, re-derived from the seed for older rows) and the
disclosed end/crash offsets.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from core.ride_interpolation import calculate_elapsed_fraction
from core.ride_params import derive_crash_fraction
from core.rounding import round_to
from env_config import Config


@dataclass
class RideWindow:
    duration_seconds: float
    crash_fraction: float
    elapsed_fraction: float

    @property
    def crashed(self) -> bool:
        return self.elapsed_fraction >= self.crash_fraction

    @property
    def ended(self) -> bool:
        return self.elapsed_fraction >= 1

    @property
    def end_offset_seconds(self) -> float:
        return round_to(self.duration_seconds, 3)

    @property
    def crash_offset_seconds(self) -> float:
        return round_to(self.crash_fraction * self.duration_seconds, 3)

    def offsets(self) -> Dict[str, Any]:
        return {
            "ride_end_at_offset_seconds": self.end_offset_seconds,
            "ride_crash_at_offset_seconds": self.crash_offset_seconds,
        }


def ride_window(reward, now: Optional[datetime] = None, config=Config) -> RideWindow:
    duration = reward.duration_seconds
    if duration is None:
        duration = (reward.end_time - reward.start_time).total_seconds()

    crash_fraction = reward.crash_fraction
    if crash_fraction is None:
        crash_fraction = derive_crash_fraction(reward.seed, duration, config.RIDE_MIN_CRASH_SECONDS)

    return RideWindow(
        duration_seconds=duration,
        crash_fraction=crash_fraction,
        elapsed_fraction=calculate_elapsed_fraction(reward.start_time, reward.end_time, now),
    )


__all__ = ["RideWindow", "ride_window"]
