from schedule_tools.utils import text_sanitizer


def test_sanitize_text_strips_markup_and_whitespace() -> None:
    text = text_sanitizer.sanitize_text("<script>alert(1)</script>Main   St\n")

    assert text == "Main St"
    assert text_sanitizer.sanitize_text(None) == ""
    assert len(text_sanitizer.sanitize_text("a" * 2000)) == text_sanitizer.GENERAL_TEXT_LIMIT


def test_sanitize_timepoint_name() -> None:
    assert text_sanitizer.sanitize_timepoint_name("Main (North) St.") == "Main North St."
    assert text_sanitizer.sanitize_timepoint_name("King & Queen, West-End") == "King & Queen, West-End"
    assert len(text_sanitizer.sanitize_timepoint_name("x" * 150)) == text_sanitizer.TIMEPOINT_NAME_LIMIT


def test_contains_attack_patterns() -> None:
    assert not text_sanitizer.contains_attack_patterns("Main & 1st (North)")
    assert not text_sanitizer.contains_attack_patterns("Hospital - East Entrance")
    assert text_sanitizer.contains_attack_patterns("<script src=x>")
    assert text_sanitizer.contains_attack_patterns("javascript:alert(1)")
    assert text_sanitizer.contains_attack_patterns("stop; DROP TABLE trips")
    assert text_sanitizer.contains_attack_patterns("../../etc/passwd")
