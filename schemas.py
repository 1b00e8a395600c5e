"""Pydantic schemas for requests.

Only the report submission has a body.  ``wait_bucket`` is kept as a plain
string here so that bad values are rejected by ``WaitBucket.parse`` with the
same 400 response as every other validation failure.
"""
from typing import Optional

from pydantic import BaseModel


class ReportRequest(BaseModel):
    clinic_id: Optional[str] = None
    wait_bucket: Optional[str] = None
