"""
Pydantic models for the locally served API documents.
"""

from pydantic import BaseModel


# ── Version ───────────────────────────────────────────────────────────────

class VersionData(BaseModel):
    version: str
    python_version: str


class VersionResponse(BaseModel):
    code: int = 0
    message: str = "success"
    data: VersionData
