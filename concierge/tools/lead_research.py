"""
Lead research: derive company and person details for the session's lead.

The company homepage is analysed through the URL analyzer; anything that
fails there degrades to what the email domain alone tells us.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..context_store import ContextStore
from ..errors import ConciergeError, ToolInputError
from ..log_sanitizer import mask_session_id
from ..logging_config import logger
from ..schemas.budget import DemoFeature
from ..schemas.context import CompanyInfo, PersonInfo
from ..services.demo_budget import DemoBudgetManager, estimate_tokens
from .url_context import UrlAnalyzer

ESTIMATED_RESEARCH_TOKENS = 2000

FREE_MAIL_DOMAINS = frozenset(
    {
        "gmail.com",
        "googlemail.com",
        "outlook.com",
        "hotmail.com",
        "live.com",
        "yahoo.com",
        "icloud.com",
        "me.com",
        "proton.me",
        "protonmail.com",
        "aol.com",
        "gmx.com",
    }
)

INDUSTRY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Software", ("software", "saas", "platform", "cloud", "developer", "api")),
    ("Finance", ("bank", "finance", "fintech", "insurance", "payments", "investment")),
    ("Healthcare", ("health", "medical", "clinic", "patient", "pharma")),
    ("Retail", ("shop", "store", "retail", "e-commerce", "ecommerce")),
    ("Manufacturing", ("manufacturing", "factory", "industrial", "production")),
    ("Consulting", ("consulting", "advisory", "agency", "services")),
    ("Education", ("education", "school", "university", "learning", "course")),
)

SENIORITY_BY_ROLE = {
    "CEO": "C-level",
    "CTO": "C-level",
    "CFO": "C-level",
    "Marketing": "Manager",
    "Operations": "Manager",
    "Sales": "Manager",
    "Product": "Manager",
    "Engineering": "Individual contributor",
}


class LeadResearchInput(BaseModel):
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
    company_domain: str | None = Field(default=None, alias="companyDomain", max_length=253)

    model_config = ConfigDict(populate_by_name=True)


def company_domain_for(email: str, explicit: str | None) -> str | None:
    if explicit and explicit.strip():
        domain = explicit.strip().lower()
        for prefix in ("https://", "http://"):
            if domain.startswith(prefix):
                domain = domain[len(prefix):]
        return domain.split("/")[0].removeprefix("www.") or None
    domain = email.rsplit("@", 1)[-1].lower()
    if domain in FREE_MAIL_DOMAINS:
        return None
    return domain


def guess_industry(text: str) -> str | None:
    lowered = text.lower()
    best: tuple[int, str | None] = (0, None)
    for industry, keywords in INDUSTRY_KEYWORDS:
        hits = sum(lowered.count(keyword) for keyword in keywords)
        if hits > best[0]:
            best = (hits, industry)
    return best[1]


def _name_from_domain(domain: str) -> str:
    label = domain.split(".")[0]
    return label.replace("-", " ").title()


class LeadResearcher:
    def __init__(
        self,
        *,
        analyzer: UrlAnalyzer,
        context_store: ContextStore,
        budget_manager: DemoBudgetManager,
    ) -> None:
        self.analyzer = analyzer
        self.context_store = context_store
        self.budget_manager = budget_manager

    async def run(self, session_id: str | None, params: LeadResearchInput) -> dict[str, Any]:
        if not session_id:
            raise ToolInputError("Lead research requires a session")
        feature = DemoFeature.LEAD_RESEARCH.value
        await self.budget_manager.require_access(session_id, feature, ESTIMATED_RESEARCH_TOKENS)

        email = params.email.lower()
        domain = company_domain_for(email, params.company_domain)
        company: CompanyInfo | None = None
        analysed_text = ""
        sources: list[str] = []
        if domain:
            company = CompanyInfo(name=_name_from_domain(domain), domain=domain)
            url = f"https://{domain}"
            try:
                page = await self.analyzer.analyze_url(url)
            except ConciergeError as exc:
                logger.warning(
                    "lead_research: homepage analysis failed for %s (session=%s): %s",
                    domain,
                    mask_session_id(session_id),
                    exc.message,
                )
            else:
                analysed_text = f"{page['title']} {page['description']} {page['extractedText']}"
                company = CompanyInfo(
                    name=page["metadata"].get("ogTitle") or page["title"] or company.name,
                    domain=domain,
                    industry=guess_industry(analysed_text),
                    summary=page["description"] or page["extractedText"][:300] or None,
                )
                sources.append(page["url"])

        snapshot, _ = await self.context_store.ensure(session_id)
        person = PersonInfo(
            full_name=snapshot.lead.name,
            role=snapshot.role,
            seniority=SENIORITY_BY_ROLE.get(snapshot.role or ""),
        )
        lead = snapshot.lead.model_copy(update={"email": snapshot.lead.email or email})
        partial: dict[str, Any] = {"lead": lead, "person": person}
        if company is not None:
            partial["company"] = company
        await self.context_store.update(session_id, partial)

        await self.budget_manager.record_usage(
            session_id, feature, max(estimate_tokens(analysed_text), 1)
        )
        return {
            "company": company.to_wire() if company else None,
            "person": person.to_wire(),
            "sources": sources,
        }


__all__ = [
    "LeadResearchInput",
    "LeadResearcher",
    "company_domain_for",
    "guess_industry",
]
