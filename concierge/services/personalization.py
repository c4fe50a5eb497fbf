from __future__ import annotations

from ..schemas.context import ContextSnapshot, ConversationStage

BASE_SYSTEM_PROMPT = (
    "You are F.B/c AI, a helpful and intelligent business consulting assistant. "
    "Be concise, practical and specific to the visitor's situation."
)

STAGE_GUIDANCE: dict[ConversationStage, str] = {
    ConversationStage.GREETING: "Welcome the visitor warmly and ask for their name.",
    ConversationStage.NAME_COLLECTION: "Ask for the visitor's name if you do not know it yet.",
    ConversationStage.EMAIL_CAPTURE: (
        "Ask for a work email so you can tailor the conversation to their company."
    ),
    ConversationStage.BACKGROUND_RESEARCH: (
        "Use what you know about their company and role to ask one focused question."
    ),
    ConversationStage.PROBLEM_DISCOVERY: (
        "Dig into their main business challenge: impact, current process, constraints."
    ),
    ConversationStage.SOLUTION_PRESENTATION: (
        "Propose concrete AI or automation approaches and offer an ROI estimate."
    ),
    ConversationStage.CALL_TO_ACTION: "Suggest booking a consultation call as the next step.",
}


def build_system_prompt(snapshot: ContextSnapshot | None) -> str:
    """System prompt with whatever the session already knows about the visitor."""
    prompt = BASE_SYSTEM_PROMPT
    if snapshot is None:
        return prompt + "\n\nSTAGE GUIDANCE: " + STAGE_GUIDANCE[ConversationStage.GREETING]

    lines: list[str] = []
    lead = snapshot.lead
    if lead.name or lead.email:
        who = lead.name or "Unknown"
        lines.append(f"User: {who} ({lead.email})" if lead.email else f"User: {who}")
    if snapshot.company is not None:
        company = snapshot.company
        lines.append(f"Company: {company.name or 'Unknown'}")
        if company.domain:
            lines.append(f"Website: {company.domain}")
        if company.industry:
            lines.append(f"Industry: {company.industry}")
        if company.summary:
            lines.append(f"Background: {company.summary}")
    if snapshot.person is not None:
        if snapshot.person.role:
            lines.append(f"Role: {snapshot.person.role}")
        if snapshot.person.seniority:
            lines.append(f"Seniority: {snapshot.person.seniority}")
    if snapshot.role and snapshot.role_confidence:
        lines.append(
            f"Detected Role: {snapshot.role} ({round(snapshot.role_confidence * 100)}% confidence)"
        )
    if snapshot.capabilities:
        used = ", ".join(dict.fromkeys(snapshot.capabilities))
        lines.append(f"Tools already used: {used}")

    if lines:
        prompt += "\n\nPERSONALIZED CONTEXT:\n" + "\n".join(lines)
    prompt += "\n\nSTAGE GUIDANCE: " + STAGE_GUIDANCE[snapshot.stage]
    return prompt


__all__ = ["BASE_SYSTEM_PROMPT", "STAGE_GUIDANCE", "build_system_prompt"]
