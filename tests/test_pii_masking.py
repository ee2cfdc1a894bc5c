from __future__ import annotations

import pytest

from privgate.core.pii import (
    PiiType,
    contains_pii,
    detect_pii,
    mask_pii,
    pii_summary,
    restore_output,
    validate_masked_text,
)
from privgate.core.pii.anonymizer import anonymize_ip
from privgate.core.pii.patterns import patterns_for


def _types(text: str) -> list:
    return [e.type for e in detect_pii(text)]


def test_contact_sentence_yields_person_and_email():
    text = "Contact Jane Doe at jane@example.com"
    ents = detect_pii(text)
    assert [e.type for e in ents] == [PiiType.PERSON, PiiType.EMAIL]
    assert [e.value for e in ents] == ["Jane Doe", "jane@example.com"]
    assert text[ents[0].start : ents[0].end] == "Jane Doe"

    res = mask_pii(text, ents)
    assert "jane@example.com" not in res.masked_text
    assert "Jane Doe" not in res.masked_text
    assert res.masked_text == "Contact [PERSON_1] at [EMAIL_1]"


@pytest.mark.parametrize(
    "text",
    [
        "Contact Jane Doe at jane@example.com",
        "Call +33 6 12 34 56 78 or 555-123-4567 tomorrow.",
        "IBAN FR76 3000 6000 0112 3456 7890 189, SSN 123-45-6789.",
        "Card 4111 1111 1111 1111 from 192.168.1.42 and 2001:db8::1",
        "Marie Curie and Pierre Curie wrote to marie@curie.fr and marie@curie.fr again",
        "nothing personal here at all",
        "",
    ],
)
def test_round_trip_restores_exactly(text):
    res = mask_pii(text, detect_pii(text))
    restored = restore_output(res.masked_text, res.mapping)
    assert restored == text
    for tok in res.mapping.tokens():
        assert tok not in restored


def test_same_value_gets_same_token():
    text = "mail a@b.io, then a@b.io, then c@d.io"
    res = mask_pii(text, detect_pii(text))
    assert res.masked_text == "mail [EMAIL_1], then [EMAIL_1], then [EMAIL_2]"
    assert len(res.mapping) == 2


def test_existing_placeholder_literal_is_not_reused():
    text = "template [EMAIL_1] for bob@example.com"
    res = mask_pii(text, detect_pii(text))
    assert "[EMAIL_2]" in res.masked_text
    assert restore_output(res.masked_text, res.mapping) == text


def test_restore_in_model_output_with_reordering():
    text = "Contact Jane Doe at jane@example.com"
    res = mask_pii(text, detect_pii(text))
    model_out = "Sure: I will email [EMAIL_1] to reach [PERSON_1]. [PERSON_1] will reply."
    out = restore_output(model_out, res.mapping)
    assert out == "Sure: I will email jane@example.com to reach Jane Doe. Jane Doe will reply."


def test_detected_types():
    assert _types("SSN 123-45-6789") == [PiiType.SSN]
    assert _types("card 4111 1111 1111 1111") == [PiiType.CREDIT_CARD]
    assert _types("card 4111 1111 1111 1112") != [PiiType.CREDIT_CARD]
    assert _types("iban FR76 3000 6000 0112 3456 7890 189") == [PiiType.IBAN]
    assert _types("from 10.0.0.7") == [PiiType.IP_ADDRESS]
    assert _types("phone (555) 123-4567") == [PiiType.PHONE]
    assert _types("on 2024-01-15 at 10:30") == []


def test_card_after_leading_digits_is_still_found():
    text = "Ref 2023 4111 1111 1111 1111 please"
    ents = detect_pii(text)
    assert [e.type for e in ents] == [PiiType.CREDIT_CARD]
    assert ents[0].value == "4111 1111 1111 1111"
    assert "4111" not in mask_pii(text, ents).masked_text


def test_rejected_long_number_does_not_hide_later_phone():
    text = "Order 1234567890123456789 or call +33 6 12 34 56 78"
    ents = detect_pii(text)
    assert [e.type for e in ents] == [PiiType.PHONE]
    assert ents[0].value == "+33 6 12 34 56 78"


def test_person_whitelist_and_trimming():
    assert detect_pii("We met in New York last year") == []
    assert detect_pii("Dear Customer") == []
    ents = detect_pii("Hello Alice Martin, welcome")
    assert [e.value for e in ents] == ["Alice Martin"]


def test_entities_do_not_overlap_and_are_sorted():
    text = "Reach Bob Stone on 555-123-4567 or bob@stone.io, SSN 123-45-6789"
    ents = detect_pii(text)
    assert [e.start for e in ents] == sorted(e.start for e in ents)
    for a, b in zip(ents, ents[1:]):
        assert a.end <= b.start
    assert [e.type for e in ents] == [PiiType.PERSON, PiiType.PHONE, PiiType.EMAIL, PiiType.SSN]


def test_detection_is_deterministic():
    text = "Contact Jane Doe at jane@example.com or 555-123-4567"
    assert detect_pii(text) == detect_pii(text)


def test_leak_check():
    text = "Contact Jane Doe at jane@example.com"
    res = mask_pii(text, detect_pii(text))
    assert validate_masked_text(res.masked_text, res.mapping) is True
    assert validate_masked_text(res.masked_text + " jane@example.com", res.mapping) is False


def test_summary_and_contains():
    ents = detect_pii("a@b.io c@d.io 123-45-6789")
    assert pii_summary(ents) == {"types": ["EMAIL", "SSN"], "count": 3}
    assert contains_pii("write to a@b.io") is True
    assert contains_pii("no personal data") is False


def test_entity_and_mapping_repr_hide_values():
    text = "Contact Jane Doe at jane@example.com"
    ents = detect_pii(text)
    res = mask_pii(text, ents)
    assert "jane@example.com" not in repr(ents)
    assert "jane@example.com" not in repr(res.mapping)
    assert "Jane Doe" not in str(res.mapping)


def test_mapping_clear_destroys_values():
    text = "Contact Jane Doe at jane@example.com"
    res = mask_pii(text, detect_pii(text))
    res.mapping.clear()
    assert len(res.mapping) == 0
    assert restore_output(res.masked_text, res.mapping) == res.masked_text


def test_patterns_for_restricts_types():
    pats = patterns_for(["email"])
    ents = detect_pii("Contact Jane Doe at jane@example.com", patterns=pats)
    assert [e.type for e in ents] == [PiiType.EMAIL]
    with pytest.raises(ValueError):
        patterns_for(["NOPE"])


def test_anonymize_ip():
    assert anonymize_ip("192.168.1.42") == "192.168.1.0"
    assert anonymize_ip("2001:db8:85a3:1234:5678:8a2e:370:7334") == "2001:db8:85a3:1234::"
    with pytest.raises(ValueError):
        anonymize_ip("not-an-ip")
