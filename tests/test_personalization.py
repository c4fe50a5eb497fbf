from concierge.schemas.context import (
    CompanyInfo,
    ContextSnapshot,
    ConversationStage,
    Lead,
    PersonInfo,
)
from concierge.services.personalization import (
    BASE_SYSTEM_PROMPT,
    STAGE_GUIDANCE,
    build_system_prompt,
)


def test_prompt_without_context_uses_greeting_guidance():
    prompt = build_system_prompt(None)
    assert prompt.startswith(BASE_SYSTEM_PROMPT)
    assert STAGE_GUIDANCE[ConversationStage.GREETING] in prompt
    assert "PERSONALIZED CONTEXT" not in prompt


def test_prompt_includes_known_context():
    snapshot = ContextSnapshot(
        session_id="s1",
        lead=Lead(name="Ada", email="ada@acme.io"),
        company=CompanyInfo(name="Acme", industry="Software"),
        person=PersonInfo(role="CTO", seniority="C-level"),
        role="CTO",
        role_confidence=0.9,
        stage=ConversationStage.PROBLEM_DISCOVERY,
        capabilities=["roi", "roi", "urlContext"],
    )
    prompt = build_system_prompt(snapshot)

    assert "User: Ada (ada@acme.io)" in prompt
    assert "Company: Acme" in prompt
    assert "Industry: Software" in prompt
    assert "Seniority: C-level" in prompt
    assert "Detected Role: CTO (90% confidence)" in prompt
    assert "Tools already used: roi, urlContext" in prompt
    assert STAGE_GUIDANCE[ConversationStage.PROBLEM_DISCOVERY] in prompt
