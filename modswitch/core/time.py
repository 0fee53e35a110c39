# modswitch/core/time.py
from __future__ import annotations
import datetime as dt

__all__ = ["utcNow", "utcNowIso", "backupStamp", "snapshotStamp", "fromTimestamp"]



def utcNow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)



def utcNowIso() -> str:
    return utcNow().isoformat(timespec="milliseconds").replace("+00:00", "Z")



def backupStamp(moment: dt.datetime | None = None) -> str:
    """`yyyyMMdd_HHmmss` in UTC, used as the suffix of side-file backups."""
    return (moment or utcNow()).strftime("%Y%m%d_%H%M%S")



def snapshotStamp(moment: dt.datetime | None = None) -> str:
    """`yyyyMMdd_HHmmssfff` in UTC (millisecond precision), used for snapshot file names."""
    moment = moment or utcNow()
    return moment.strftime("%Y%m%d_%H%M%S") + f"{moment.microsecond // 1000:03d}"



def fromTimestamp(ts: float) -> dt.datetime:
    return dt.datetime.fromtimestamp(ts, tz=dt.timezone.utc)
