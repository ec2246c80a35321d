from datetime import datetime, timedelta

from service_scheduler.core.clock import as_utc, to_depot
from service_scheduler.domains.threshold_engine.constants import (
    DEFAULT_HOURS_UNTIL_OFF_PEAK,
    DEFAULT_OFF_PEAK_START_HOUR,
    MORNING_SHOULDER_PERIOD_NAME,
    OFF_PEAK_PERIOD_NAME,
)
from service_scheduler.domains.threshold_engine.types import RatePeriod


class RateCalendar:
    """Time-of-day energy rate periods for one depot (hours are depot wall-clock)."""

    def __init__(self, periods: list[RatePeriod]) -> None:
        self.periods = list(periods)

    def rate_for_hour(self, hour: int) -> RatePeriod | None:
        for p in self.periods:
            if p.contains_hour(hour):
                return p
        return None

    def rate_at(self, ts: datetime) -> RatePeriod | None:
        return self.rate_for_hour(to_depot(ts).hour)

    def lowest(self) -> RatePeriod | None:
        if not self.periods:
            return None
        return min(self.periods, key=lambda p: p.rate_per_kwh)

    def highest(self) -> RatePeriod | None:
        if not self.periods:
            return None
        return max(self.periods, key=lambda p: p.rate_per_kwh)

    def by_name(self, name: str) -> RatePeriod | None:
        for p in self.periods:
            if p.period_name == name:
                return p
        return None

    def off_peak(self) -> RatePeriod | None:
        # Named off-peak period wins; otherwise the cheapest one plays that role.
        return self.by_name(OFF_PEAK_PERIOD_NAME) or self.lowest()

    def morning_shoulder(self) -> RatePeriod | None:
        return self.by_name(MORNING_SHOULDER_PERIOD_NAME)

    def is_off_peak(self, ts: datetime) -> bool:
        off_peak = self.off_peak()
        return off_peak is not None and off_peak.contains_hour(to_depot(ts).hour)

    def hours_until_off_peak(self, now: datetime) -> float:
        off_peak = self.off_peak()
        if off_peak is None:
            return float(DEFAULT_HOURS_UNTIL_OFF_PEAK)
        local = to_depot(now)
        if off_peak.contains_hour(local.hour):
            return 0.0
        start = off_peak.start_hour
        if local.hour <= start:
            return float(start - local.hour)
        return float(24 - local.hour + start)

    def next_off_peak_start(self, now: datetime) -> datetime:
        off_peak = self.off_peak()
        start_hour = off_peak.start_hour if off_peak else DEFAULT_OFF_PEAK_START_HOUR
        local = to_depot(now)
        if off_peak is not None and off_peak.contains_hour(local.hour):
            return as_utc(now)
        nxt = local.replace(hour=start_hour, minute=0, second=0, microsecond=0)
        if nxt <= local:
            nxt = nxt + timedelta(days=1)
        return as_utc(nxt)
