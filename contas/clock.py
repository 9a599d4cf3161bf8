from __future__ import annotations

from datetime import datetime

from contas.constants import SP_TZ


class Clock:
    """Source of "now" for the services; swap it out to pin time."""

    def now(self) -> datetime:
        return datetime.now(SP_TZ)


class FixedClock(Clock):
    def __init__(self, moment: datetime) -> None:
        self.moment = moment if moment.tzinfo else moment.replace(tzinfo=SP_TZ)

    def now(self) -> datetime:
        return self.moment
