"""Tests for display mapping, wait bucket parsing and the clinic directory."""

import pytest

from clinics import CLINICS, get_clinic, get_clinic_by_slug, search_clinics
from errors import ValidationError
from models import StatusLabel, StatusResult, WaitBucket
from presentation import present, status_colors, status_emoji, status_text


class TestPresentation:
    @pytest.mark.parametrize(
        "label, emoji, text",
        [
            (StatusLabel.smooth, "🟢", "Moving smoothly"),
            (StatusLabel.some_waiting, "🟡", "Some waiting reported"),
            (StatusLabel.heavy_waiting, "🔴", "Heavy waiting reported"),
            (StatusLabel.unknown, "⚪", "No one has shared an update recently"),
        ],
    )
    def test_every_label_mapped(self, label, emoji, text):
        assert status_emoji(label) == emoji
        assert status_text(label) == text
        assert set(status_colors(label)) == {"bg", "text"}

    def test_accepts_raw_values(self):
        assert status_emoji("some-waiting") == "🟡"

    def test_colors_are_copies(self):
        status_colors(StatusLabel.smooth)["bg"] = "#000000"
        assert status_colors(StatusLabel.smooth)["bg"] == "#ECFDF3"

    def test_present(self):
        result = StatusResult.for_label("4", StatusLabel.smooth, "Based on reports in the last 3 minutes", 2)
        shown = present(result)
        assert shown["status"] == "smooth"
        assert shown["confidence"] == "Based on reports in the last 3 minutes"
        assert shown["emoji"] == "🟢"
        assert shown["description"] == "Visitors report little or no waiting right now"


class TestWaitBucketParse:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("<15", WaitBucket.under_15),
            ("15-30", WaitBucket.from_15_to_30),
            ("30+", WaitBucket.over_30),
            ("UNDER_15", WaitBucket.under_15),
            ("from_15_to_30", WaitBucket.from_15_to_30),
            ("OVER_30", WaitBucket.over_30),
            ("Just arrived / <15 min", WaitBucket.under_15),
            ("15–30 min", WaitBucket.from_15_to_30),
            (" 30+ min ", WaitBucket.over_30),
            (WaitBucket.over_30, WaitBucket.over_30),
        ],
    )
    def test_accepted(self, value, expected):
        assert WaitBucket.parse(value) is expected

    @pytest.mark.parametrize("value", ["", "45+", "none", None, 15])
    def test_rejected(self, value):
        with pytest.raises(ValidationError):
            WaitBucket.parse(value)


class TestClinics:
    def test_lookup(self):
        assert get_clinic("1").slug == "apollo-clinic-whitefield"
        assert get_clinic_by_slug("sparsh-clinic-whitefield").id == "3"
        assert get_clinic("8") is None

    def test_search_matches_area(self):
        assert search_clinics("BANGALORE") == CLINICS

    def test_search_blank(self):
        assert search_clinics("   ") == []
