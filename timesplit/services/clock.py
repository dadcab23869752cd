"""
Clock used by the session engine when a command carries no timestamp.

The offset corrects a local clock that is known to drift from a reference
(e.g. a time server); it is added to every reading.
"""

import datetime

from timesplit.domain.models import to_timestamp_ms


class Clock:
    def __init__(self, offset: datetime.timedelta = datetime.timedelta(0)):
        self.offset = offset

    def now(self) -> datetime.datetime:
        """Current UTC time plus offset, naive, millisecond resolution"""
        now = datetime.datetime.now(datetime.timezone.utc) + self.offset
        return to_timestamp_ms(now)
