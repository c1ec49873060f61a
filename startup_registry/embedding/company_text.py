"""Text synthesized from a company record for embedding."""

from typing import List

from ..company_store.models import Company


def generate_company_text(company: Company) -> str:
    """Build labeled, period-separated segments from the embedding-relevant fields.

    >>> generate_company_text(Company(id="1", name="Acme", tags=["ai", "b2b"], stage="Seed"))
    'Acme. Tags: ai, b2b. Stage: Seed'
    """
    segments: List[str] = [company.name.strip()]

    if company.description and company.description.strip():
        segments.append(company.description.strip())
    if company.tags:
        segments.append(f"Tags: {', '.join(company.tags)}")
    if company.backing_vcs:
        segments.append(f"Backing VCs: {', '.join(company.backing_vcs)}")
    if company.stage and company.stage.strip():
        segments.append(f"Stage: {company.stage.strip()}")
    if company.founders:
        segments.append(f"Founders: {', '.join(company.founders)}")

    return ". ".join(segment for segment in segments if segment)
