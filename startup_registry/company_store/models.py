"""Pydantic models for company records.

``Company`` is the externally visible record. The embedding vector is kept
out of it on purpose and is read and written through dedicated store calls.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

# Fields whose value feeds the text sent to the embedding provider.
EMBEDDING_RELEVANT_FIELDS = ("name", "description", "tags", "backing_vcs", "stage", "founders")

UPDATABLE_FIELDS = (
    "name",
    "description",
    "tags",
    "sector",
    "backing_vcs",
    "stage",
    "founders",
    "website",
    "logo_url",
)


def split_person_name(full_name: str) -> Tuple[str, str]:
    """Split ``"Ada King Lovelace"`` into ``("Ada", "King Lovelace")``."""
    parts = full_name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _clean_labels(value: Any) -> List[str]:
    """Coerce a nullable label collection into a list of trimmed, non-empty strings."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    cleaned = []
    for item in value:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            cleaned.append(text)
    return cleaned


class Company(BaseModel):
    """A company in the registry."""

    id: str = Field(..., description="Opaque unique identifier")
    name: str = Field(..., min_length=1, description="Company name")
    description: Optional[str] = Field(None, description="Free-text description")
    tags: List[str] = Field(default_factory=list, description="Free-form labels")
    sector: Optional[str] = Field(None, description="Sector label")
    backing_vcs: List[str] = Field(default_factory=list, description="Investor names")
    stage: Optional[str] = Field(None, description="Funding stage, e.g. Seed")
    founders: List[str] = Field(default_factory=list, description="Founder names")
    website: Optional[str] = Field(None, description="Company website")
    logo_url: Optional[str] = Field(None, description="Logo URL")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        # asyncpg hands back uuid.UUID for uuid columns
        return str(value) if value is not None else value

    @field_validator("tags", "backing_vcs", "founders", mode="before")
    @classmethod
    def _default_labels(cls, value: Any) -> List[str]:
        return _clean_labels(value)

    def has_all_tags(self, tags: List[str]) -> bool:
        """True when every requested tag is present (exact, case-sensitive)."""
        own = set(self.tags)
        return all(tag in own for tag in tags)


class CompanySearchResult(Company):
    """A company row returned by the store's hybrid ranking function."""

    similarity: float = Field(0.0, description="Vector similarity to the query")
    rank_score: float = Field(0.0, description="Blended ranking score")

    def to_company(self) -> Company:
        """Drop the transient scoring fields."""
        return Company(**self.model_dump(exclude={"similarity", "rank_score"}))


class CompanyCreate(BaseModel):
    """Input for creating a company."""

    name: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    sector: Optional[str] = None
    backing_vcs: List[str] = Field(default_factory=list)
    stage: Optional[str] = None
    founders: List[str] = Field(default_factory=list)
    website: Optional[str] = None
    logo_url: Optional[str] = None

    @field_validator("tags", "backing_vcs", "founders", mode="before")
    @classmethod
    def _default_labels(cls, value: Any) -> List[str]:
        return _clean_labels(value)


class CompanyUpdate(BaseModel):
    """Partial update; only explicitly supplied fields are applied."""

    name: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    sector: Optional[str] = None
    backing_vcs: Optional[List[str]] = None
    stage: Optional[str] = None
    founders: Optional[List[str]] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None

    @field_validator("tags", "backing_vcs", "founders", mode="before")
    @classmethod
    def _default_labels(cls, value: Any) -> List[str]:
        return _clean_labels(value)

    def changes(self) -> Dict[str, Any]:
        """Return only the fields the caller actually supplied."""
        return self.model_dump(include=set(UPDATABLE_FIELDS), exclude_unset=True)
