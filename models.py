"""Data models for clinic wait reports.

Reports are the only persisted fact: a visitor at a clinic says roughly how
long they have been waiting, bucketed into one of three ranges.  The wait
status shown to other visitors is derived from recent reports on every
request and is never stored.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlmodel import Field, SQLModel

from errors import ValidationError


class WaitBucket(str, Enum):
    """Coarse wait duration a reporter selects."""

    under_15 = "<15"
    from_15_to_30 = "15-30"
    over_30 = "30+"

    @classmethod
    def parse(cls, value: object) -> "WaitBucket":
        """Accept wire values, member names or the labels shown in the UI."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            if text in _BUCKET_ALIASES:
                return _BUCKET_ALIASES[text]
            try:
                return cls[text.lower()]
            except KeyError:
                pass
        raise ValidationError(f"Invalid wait_bucket: {value!r}")


_BUCKET_ALIASES = {
    "<15": WaitBucket.under_15,
    "15-30": WaitBucket.from_15_to_30,
    "30+": WaitBucket.over_30,
    "Just arrived / <15 min": WaitBucket.under_15,
    "15–30 min": WaitBucket.from_15_to_30,
    "15-30 min": WaitBucket.from_15_to_30,
    "30+ min": WaitBucket.over_30,
}


class StatusLabel(str, Enum):
    smooth = "smooth"
    some_waiting = "some-waiting"
    heavy_waiting = "heavy-waiting"
    unknown = "unknown"


STATUS_DESCRIPTIONS = {
    StatusLabel.smooth: "Visitors report little or no waiting right now",
    StatusLabel.some_waiting: "A few visitors are currently waiting",
    StatusLabel.heavy_waiting: "Multiple visitors report long waiting",
    StatusLabel.unknown: "Status updates appear when people are visiting",
}


class Report(SQLModel, table=True):
    __tablename__ = "reports"

    id: Optional[int] = Field(default=None, primary_key=True)
    clinic_id: str = Field(index=True)
    wait_bucket: WaitBucket
    created_at: datetime = Field(index=True)
    device_id: Optional[str] = Field(default=None, index=True)  # rate limiting only

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "clinic_id": self.clinic_id,
            "wait_bucket": getattr(self.wait_bucket, "value", self.wait_bucket),
            "created_at": self.created_at.isoformat(),
        }


class StatusResult(BaseModel):
    """Derived wait status for one clinic at one point in time."""

    model_config = ConfigDict(frozen=True)

    clinic_id: str
    label: StatusLabel
    description: str
    confidence_note: str = ""
    report_count: int = 0

    @classmethod
    def for_label(
        cls, clinic_id: str, label: StatusLabel, confidence_note: str = "", report_count: int = 0
    ) -> "StatusResult":
        return cls(
            clinic_id=clinic_id,
            label=label,
            description=STATUS_DESCRIPTIONS[label],
            confidence_note=confidence_note,
            report_count=report_count,
        )
