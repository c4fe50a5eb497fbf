import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from concierge.context_store import ContextStore
from concierge.errors import BudgetExhausted, ToolInputError, UpstreamProviderError
from concierge.services.demo_budget import DemoBudgetManager
from concierge.tools.calc import CalcInput, calculate
from concierge.tools.lead_research import (
    LeadResearcher,
    LeadResearchInput,
    company_domain_for,
    guess_industry,
)
from concierge.tools.meeting import MeetingInput, MeetingScheduler
from concierge.tools.roi import RoiInput, calculate_roi
from concierge.tools.url_context import UrlAnalyzer, UrlInput, analyze_html
from concierge.tools.url_guards import DomainNotAllowed, check_allowed_domain

PAGE = """
<html><head>
<title>Acme Cloud Software</title>
<meta name="description" content="Acme builds cloud software for finance teams.">
<script>var tracking = 1;</script>
</head><body><nav>Menu</nav><h1>Welcome</h1><p>Our platform automates invoicing.</p></body></html>
"""


async def public_resolver(hostname: str) -> list[str]:
    return ["93.184.216.34"]


async def private_resolver(hostname: str) -> list[str]:
    return ["10.0.0.5"]


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _html_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, text=PAGE, headers={"content-type": "text/html; charset=utf-8"})


# roi


def test_roi_reference_numbers():
    result = calculate_roi(
        RoiInput(initial_investment=1000, monthly_revenue=500, monthly_expenses=200, time_period=12)
    )
    assert result["monthlyProfit"] == 300
    assert result["totalProfit"] == 3600
    assert result["roi"] == 260
    assert result["paybackPeriod"] == 3.33
    assert result["breakEvenMonth"] == 4
    assert result["profitability"] == "Excellent"


def test_roi_undefined_values_are_none():
    no_investment = calculate_roi(
        RoiInput(initialInvestment=0, monthlyRevenue=100, monthlyExpenses=50, timePeriod=6)
    )
    assert no_investment["roi"] is None
    assert no_investment["paybackPeriod"] == 0

    losing = calculate_roi(
        RoiInput(initialInvestment=1000, monthlyRevenue=100, monthlyExpenses=200, timePeriod=6)
    )
    assert losing["paybackPeriod"] is None
    assert losing["breakEvenMonth"] is None
    assert losing["profitability"] == "Unprofitable"


def test_roi_input_bounds():
    with pytest.raises(ValueError):
        RoiInput(initialInvestment=-1, monthlyRevenue=1, monthlyExpenses=1, timePeriod=1)
    with pytest.raises(ValueError):
        RoiInput(initialInvestment=1, monthlyRevenue=1, monthlyExpenses=1, timePeriod=61)


# calc


def test_calc_operations():
    assert calculate(CalcInput(values=[1, 2, 3], op="avg")) == 2
    assert isinstance(calculate(CalcInput(values=[1, 2, 3], op="avg")), int)
    assert calculate(CalcInput(values=[1, 2, 3], op="sum")) == 6
    assert calculate(CalcInput(values=[1.5, -2], op="min")) == -2
    assert calculate(CalcInput(values=[1.5, -2], op="max")) == 1.5


def test_calc_rejects_empty_values_and_unknown_ops():
    with pytest.raises(ValueError):
        CalcInput(values=[], op="sum")
    with pytest.raises(ValueError):
        CalcInput(values=[1], op="median")


# meeting


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _meeting(starts_at: datetime, **overrides) -> MeetingInput:
    data = {"name": "Ada", "email": "ada@acme.io", "startsAt": starts_at.isoformat()}
    data.update(overrides)
    return MeetingInput.model_validate(data)


@pytest.mark.asyncio
async def test_meeting_booking_and_conflict(kv):
    scheduler = MeetingScheduler(kv, now=lambda: NOW)
    start = NOW + timedelta(days=1)

    booked = await scheduler.book("s1", _meeting(start))
    assert booked["status"] == "confirmed"
    assert booked["endsAt"] == (start + timedelta(minutes=30)).isoformat()

    with pytest.raises(ToolInputError):
        await scheduler.book("s2", _meeting(start + timedelta(minutes=15)))

    later = await scheduler.book("s2", _meeting(start + timedelta(minutes=30)))
    assert later["status"] == "confirmed"


@pytest.mark.asyncio
async def test_meeting_in_the_past_is_rejected(kv):
    scheduler = MeetingScheduler(kv, now=lambda: NOW)
    with pytest.raises(ToolInputError):
        await scheduler.book("s1", _meeting(NOW - timedelta(hours=1)))


def test_meeting_naive_start_is_utc():
    meeting = MeetingInput.model_validate(
        {"name": "Ada", "email": "ada@acme.io", "startsAt": "2026-03-03T10:00:00"}
    )
    assert meeting.starts_at.tzinfo is timezone.utc


# url


def test_analyze_html_extracts_metadata_and_text():
    result = analyze_html("https://acme.io", PAGE)
    assert result["title"] == "Acme Cloud Software"
    assert result["description"] == "Acme builds cloud software for finance teams."
    assert "tracking" not in result["extractedText"]
    assert "Menu" not in result["extractedText"]
    assert "Our platform automates invoicing." in result["extractedText"]
    assert result["wordCount"] == len(result["extractedText"].split())
    assert result["readingTime"] == 1


def test_allowed_domain_matching():
    assert check_allowed_domain("acme.io", []) is True
    assert check_allowed_domain("docs.acme.io", ["acme.io"]) is True
    assert check_allowed_domain("notacme.io", ["acme.io"]) is False


@pytest.mark.asyncio
async def test_url_tool_fetches_public_pages():
    analyzer = UrlAnalyzer(_client(_html_handler), resolver=public_resolver)
    result = await analyzer.run(None, UrlInput(url="https://acme.io"))
    assert result["url"] == "https://acme.io"
    assert result["title"] == "Acme Cloud Software"


@pytest.mark.asyncio
async def test_url_tool_accepts_plain_text():
    analyzer = UrlAnalyzer(_client(_html_handler), resolver=public_resolver)
    result = await analyzer.run(None, UrlInput(text="one two three"))
    assert result["url"] is None
    assert result["wordCount"] == 3


@pytest.mark.asyncio
async def test_url_tool_needs_url_or_text():
    analyzer = UrlAnalyzer(_client(_html_handler), resolver=public_resolver)
    with pytest.raises(ToolInputError, match="Provide url or text"):
        await analyzer.run(None, UrlInput())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    ["ftp://acme.io/file", "http://localhost:8000/admin", "http://127.0.0.1/", "http://10.1.2.3/"],
)
async def test_url_tool_blocks_unsafe_targets(url):
    analyzer = UrlAnalyzer(_client(_html_handler), resolver=public_resolver)
    with pytest.raises(ToolInputError):
        await analyzer.run(None, UrlInput(url=url))


@pytest.mark.asyncio
async def test_url_tool_blocks_hosts_resolving_to_private_addresses():
    analyzer = UrlAnalyzer(_client(_html_handler), resolver=private_resolver)
    with pytest.raises(ToolInputError, match="private"):
        await analyzer.run(None, UrlInput(url="https://intranet.acme.io"))


@pytest.mark.asyncio
async def test_url_tool_respects_allow_list():
    analyzer = UrlAnalyzer(
        _client(_html_handler), allowed_domains=["example.org"], resolver=public_resolver
    )
    with pytest.raises(DomainNotAllowed) as excinfo:
        await analyzer.run(None, UrlInput(url="https://acme.io"))
    assert excinfo.value.status_code == 403


@pytest.mark.asyncio
async def test_url_tool_revalidates_redirects():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"location": "http://127.0.0.1/secret"})

    analyzer = UrlAnalyzer(_client(handler), resolver=public_resolver)
    with pytest.raises(ToolInputError):
        await analyzer.run(None, UrlInput(url="https://acme.io"))


@pytest.mark.asyncio
async def test_url_tool_enforces_byte_cap():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="x" * 5000, headers={"content-type": "text/plain"})

    analyzer = UrlAnalyzer(_client(handler), max_bytes=1024, resolver=public_resolver)
    with pytest.raises(ToolInputError, match="too large"):
        await analyzer.run(None, UrlInput(url="https://acme.io"))


class SlowBody(httpx.AsyncByteStream):
    async def __aiter__(self):
        while True:
            await asyncio.sleep(0.05)
            yield b"<p>more</p>"


@pytest.mark.asyncio
async def test_url_fetch_has_a_total_deadline():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=SlowBody(), headers={"content-type": "text/html"})

    analyzer = UrlAnalyzer(_client(handler), total_timeout=0.3, resolver=public_resolver)
    with pytest.raises(UpstreamProviderError, match="timed out"):
        await analyzer.run(None, UrlInput(url="https://acme.io"))


# lead research


def test_company_domain_for():
    assert company_domain_for("ada@acme.io", None) == "acme.io"
    assert company_domain_for("ada@gmail.com", None) is None
    assert company_domain_for("ada@gmail.com", "https://www.acme.io/about") == "acme.io"


def test_guess_industry():
    assert guess_industry("Cloud software platform") == "Software"
    assert guess_industry("") is None


@pytest.mark.asyncio
async def test_lead_research_updates_context_and_budget(kv, clock):
    store = ContextStore(kv, ttl_seconds=3600)
    budget = DemoBudgetManager(kv, clock=clock)
    await store.update("s1", {"lead": {"name": "Ada"}, "role": "CTO", "role_confidence": 0.9})
    researcher = LeadResearcher(
        analyzer=UrlAnalyzer(_client(_html_handler), resolver=public_resolver),
        context_store=store,
        budget_manager=budget,
    )

    output = await researcher.run("s1", LeadResearchInput(email="ada@acme.io"))

    assert output["company"]["domain"] == "acme.io"
    assert output["company"]["industry"] == "Software"
    assert output["person"] == {"fullName": "Ada", "role": "CTO", "seniority": "C-level"}
    snapshot = await store.get("s1")
    assert snapshot.company.name == "Acme Cloud Software"
    assert snapshot.lead.email == "ada@acme.io"
    session = await budget.get_session("s1")
    assert session.usage_for("lead_research").requests_made == 1


@pytest.mark.asyncio
async def test_lead_research_degrades_when_homepage_fails(kv, clock):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    store = ContextStore(kv, ttl_seconds=3600)
    researcher = LeadResearcher(
        analyzer=UrlAnalyzer(_client(handler), resolver=public_resolver),
        context_store=store,
        budget_manager=DemoBudgetManager(kv, clock=clock),
    )
    output = await researcher.run("s1", LeadResearchInput(email="ada@acme-labs.io"))
    assert output["company"]["name"] == "Acme Labs"
    assert output["sources"] == []


@pytest.mark.asyncio
async def test_lead_research_respects_budget(kv, clock):
    budget = DemoBudgetManager(kv, clock=clock)
    for _ in range(2):
        await budget.record_usage("s1", "lead_research", 10)
    researcher = LeadResearcher(
        analyzer=UrlAnalyzer(_client(_html_handler), resolver=public_resolver),
        context_store=ContextStore(kv, ttl_seconds=3600),
        budget_manager=budget,
    )
    with pytest.raises(BudgetExhausted):
        await researcher.run("s1", LeadResearchInput(email="ada@acme.io"))
