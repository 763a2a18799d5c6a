"""Clock helpers for envelopes and credentials."""

from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp."""
    return dt.datetime.now(dt.UTC)


def isoformat_utc(moment: dt.datetime) -> str:
    """Render ``moment`` as ISO-8601 in UTC with a ``Z`` suffix.

    Naive datetimes are assumed to already be UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt.UTC)
    rendered = moment.astimezone(dt.UTC).isoformat(timespec="microseconds")
    return rendered.replace("+00:00", "Z")
