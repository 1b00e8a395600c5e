"""Clinics that currently show a live wait status.

The list is small and fixed, so it lives in code rather than the database.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class Clinic(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    area: str
    slug: str


CLINICS: List[Clinic] = [
    Clinic(id="1", name="Apollo Clinic Whitefield", area="Whitefield, Bangalore",
           slug="apollo-clinic-whitefield"),
    Clinic(id="2", name="Whitefield Dental Care", area="Whitefield, Bangalore",
           slug="whitefield-dental-care"),
    Clinic(id="3", name="Sparsh Clinic Whitefield", area="Whitefield, Bangalore",
           slug="sparsh-clinic-whitefield"),
    Clinic(id="4", name="Narayana Health City Whitefield", area="Whitefield, Bangalore",
           slug="narayana-health-city-whitefield"),
    Clinic(id="5", name="Cloudnine Hospital Whitefield", area="Whitefield, Bangalore",
           slug="cloudnine-hospital-whitefield"),
    Clinic(id="6", name="Whitefield Eye Care", area="Whitefield, Bangalore",
           slug="whitefield-eye-care"),
    Clinic(id="7", name="Dr. Agarwal's Eye Hospital Whitefield", area="Whitefield, Bangalore",
           slug="dr-agarwals-eye-hospital-whitefield"),
]

_BY_ID: Dict[str, Clinic] = {c.id: c for c in CLINICS}
_BY_SLUG: Dict[str, Clinic] = {c.slug: c for c in CLINICS}


def get_clinic(clinic_id: str) -> Optional[Clinic]:
    return _BY_ID.get(clinic_id)


def get_clinic_by_slug(slug: str) -> Optional[Clinic]:
    return _BY_SLUG.get(slug)


def search_clinics(query: str) -> List[Clinic]:
    """Case-insensitive substring match on name and area.  Blank matches nothing."""
    q = (query or "").strip().lower()
    if not q:
        return []
    return [c for c in CLINICS if q in c.name.lower() or q in c.area.lower()]
