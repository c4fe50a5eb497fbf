from concierge.schemas.context import ConversationStage
from concierge.services.conversation_analysis import (
    analyze_message,
    detect_email,
    detect_name,
    detect_role,
)


def test_greeting():
    analysis = analyze_message("Hi there")
    assert analysis.intent == "greeting"
    assert analysis.target_stage is ConversationStage.NAME_COLLECTION


def test_introduction_extracts_name():
    analysis = analyze_message("My name is Ada Lovelace")
    assert analysis.name == "Ada Lovelace"
    assert analysis.intent == "introduce"
    assert analysis.target_stage is ConversationStage.EMAIL_CAPTURE


def test_email_and_role_detection():
    analysis = analyze_message("I'm the CTO, reach me at Ada@Acme.io")
    assert analysis.email == "ada@acme.io"
    assert analysis.role == "CTO"
    assert analysis.role_confidence == 0.9
    assert analysis.name is None
    assert analysis.intent == "share_email"


def test_keyword_intents_take_priority():
    assert analyze_message("Can we schedule a meeting next week?").intent == "book_meeting"
    assert analyze_message("What would the ROI be?").intent == "calculate_roi"
    assert analyze_message("Our biggest problem is manual invoicing").intent == "describe_problem"


def test_empty_message_is_general():
    analysis = analyze_message("   ")
    assert analysis.intent == "general"
    assert analysis.target_stage is None


def test_detectors():
    assert detect_email("no email here") is None
    assert detect_name("call me Grace") == "Grace"
    assert detect_role("I run marketing") == ("Marketing", 0.7)
    assert detect_role("hello") == (None, None)
