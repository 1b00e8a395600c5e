"""Wait status derivation.

``compute_status`` turns the reports recorded for one clinic into a single
status label.  Two things are judged separately:

* confidence: only reports younger than ``FRESHNESS_WINDOW`` count, and at
  least ``QUORUM`` of them are needed before anything but ``unknown`` is
  shown, so one visitor can never swing the status alone;
* signal: among the fresh reports, the bucket holding at least half of them
  wins, checked in the order over 30 / 15-30 / under 15 so that ties favour
  the worse wait.  When no bucket reaches half the result is
  ``some-waiting``.

The function is pure: it reads nothing but its arguments and never raises.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Iterable, List

from models import StatusLabel, StatusResult, WaitBucket

FRESHNESS_WINDOW = timedelta(minutes=90)
QUORUM = 2
MAJORITY_THRESHOLD = 0.5

# Checked in this order; the first bucket at or above the threshold wins.
_DECISION_ORDER = (
    (WaitBucket.over_30, StatusLabel.heavy_waiting),
    (WaitBucket.from_15_to_30, StatusLabel.some_waiting),
    (WaitBucket.under_15, StatusLabel.smooth),
)
_FALLBACK = StatusLabel.some_waiting


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken to be UTC.
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def fresh_reports(reports: Iterable, now: datetime) -> List:
    """Reports recorded less than ``FRESHNESS_WINDOW`` before ``now``."""
    now = _as_utc(now)
    return [r for r in reports if now - _as_utc(r.created_at) < FRESHNESS_WINDOW]


def tally(reports: Iterable) -> Counter:
    """Count reports per wait bucket, skipping unrecognised buckets."""
    counts: Counter = Counter()
    for report in reports:
        try:
            bucket = WaitBucket(report.wait_bucket)
        except ValueError:
            continue
        counts[bucket] += 1
    return counts


def confidence_note(reports: List, now: datetime) -> str:
    if not reports:
        return ""
    newest = max(_as_utc(r.created_at) for r in reports)
    minutes_ago = max(0, int((_as_utc(now) - newest).total_seconds() // 60))
    unit = "minute" if minutes_ago == 1 else "minutes"
    return f"Based on reports in the last {minutes_ago} {unit}"


def compute_status(clinic_id: str, reports: Iterable, now: datetime) -> StatusResult:
    """Derive the current wait status for ``clinic_id``.

    ``reports`` must already be limited to this clinic.  Items only need
    ``created_at`` and ``wait_bucket`` attributes.
    """
    fresh = fresh_reports(reports, now)
    if len(fresh) < QUORUM:
        return StatusResult.for_label(clinic_id, StatusLabel.unknown, report_count=len(fresh))

    counts = tally(fresh)
    total = sum(counts.values())
    if total == 0:
        return StatusResult.for_label(clinic_id, StatusLabel.unknown, report_count=len(fresh))

    label = _FALLBACK
    for bucket, candidate in _DECISION_ORDER:
        if counts[bucket] / total >= MAJORITY_THRESHOLD:
            label = candidate
            break

    return StatusResult.for_label(
        clinic_id,
        label,
        confidence_note=confidence_note(fresh, now),
        report_count=len(fresh),
    )
