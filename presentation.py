"""Display helpers mapping a status label to emoji, text and colours."""

from __future__ import annotations

from typing import Any, Dict

from models import StatusLabel, StatusResult

_EMOJI = {
    StatusLabel.smooth: "🟢",
    StatusLabel.some_waiting: "🟡",
    StatusLabel.heavy_waiting: "🔴",
    StatusLabel.unknown: "⚪",
}

_TEXT = {
    StatusLabel.smooth: "Moving smoothly",
    StatusLabel.some_waiting: "Some waiting reported",
    StatusLabel.heavy_waiting: "Heavy waiting reported",
    StatusLabel.unknown: "No one has shared an update recently",
}

_COLORS = {
    StatusLabel.smooth: {"bg": "#ECFDF3", "text": "#027A48"},
    StatusLabel.some_waiting: {"bg": "#FFFAEB", "text": "#B54708"},
    StatusLabel.heavy_waiting: {"bg": "#FEF3F2", "text": "#B42318"},
    StatusLabel.unknown: {"bg": "#F9FAFB", "text": "#667085"},
}


def status_emoji(label: StatusLabel) -> str:
    return _EMOJI[StatusLabel(label)]


def status_text(label: StatusLabel) -> str:
    return _TEXT[StatusLabel(label)]


def status_colors(label: StatusLabel) -> Dict[str, str]:
    return dict(_COLORS[StatusLabel(label)])


def present(result: StatusResult) -> Dict[str, Any]:
    """Status result plus everything a page needs to render it."""
    return {
        "clinic_id": result.clinic_id,
        "status": result.label.value,
        "description": result.description,
        "confidence": result.confidence_note,
        "report_count": result.report_count,
        "emoji": status_emoji(result.label),
        "text": status_text(result.label),
        "colors": status_colors(result.label),
    }
