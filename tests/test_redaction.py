from concierge.services.redaction import redact_for_storage, summarize_for_context


def test_phone_numbers_and_emails_are_masked():
    value = {"note": "Call +1 (555) 123-4567 or mail ada@acme.io", "tags": ["555-123-4567"]}

    assert redact_for_storage(value, "***") == {"note": "Call *** or mail ***", "tags": ["***"]}
    assert value["tags"] == ["555-123-4567"]


def test_dates_and_timestamps_are_kept():
    output = {
        "meetingId": "m1",
        "startsAt": "2026-03-03T10:00:00+00:00",
        "endsAt": "2026-03-03 10:30",
    }

    assert redact_for_storage(output, "***") == output


def test_secrets_are_masked_in_summary():
    summary = summarize_for_context(
        {"apiKey": "sk-" + "a" * 24, "text": "password: hunter22"},
        {"ok": True},
        mask_token="[x]",
    )

    assert summary == {"input": {"apiKey": "[x]", "text": "[x]"}, "output": {"ok": True}}
