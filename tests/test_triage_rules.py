"""
Tests for the local triage heuristics
"""

from inboxflow.application.triage import (
    classify_category,
    detect_sentiment,
    detect_urgency,
    extract_entities,
    extract_tickers,
    split_signals,
    validate_reply,
)
from inboxflow.application.triage.rules import CATEGORY_RULES
from inboxflow.domain.models import Priority, Sentiment


class TestCategoryWaterfall:
    """First matching rule wins"""

    def test_newsletter_beats_financial(self):
        """A body with both "unsubscribe" and "invoice" is a newsletter"""
        match = classify_category("Your update", "See the invoice. Click to unsubscribe.", "billing@shop.com")
        assert match.value == "newsletter"
        assert match.confidence == 0.9

    def test_sender_marks_newsletter(self):
        assert classify_category("Weekly", "Hello", "digest@markets.io").value == "newsletter"

    def test_rule_order_is_fixed(self):
        assert [r.outcome for r in CATEGORY_RULES] == [
            "newsletter",
            "financial",
            "scheduling",
            "shopping",
            "security",
            "support",
            "promotion",
        ]

    def test_each_category(self):
        assert classify_category("Payment received", "", "x@y.com").value == "financial"
        assert classify_category("Meeting tomorrow", "", "x@y.com").value == "scheduling"
        assert classify_category("Your order shipped", "", "x@y.com").value == "shopping"
        assert classify_category("Reset your password", "", "x@y.com").value == "security"
        assert classify_category("Ticket opened", "", "x@y.com").value == "support"
        assert classify_category("50% off today", "", "x@y.com").value == "promotion"

    def test_default_is_general(self):
        match = classify_category("Hi", "How are you?", "friend@example.com")
        assert match.value == "general"
        assert match.confidence == 0.5


class TestUrgencyWaterfall:
    def test_keywords_beat_ai_suggestion(self):
        match = detect_urgency("FYI", "no action needed", "x@y.com", Priority.URGENT)
        assert match.value == Priority.LOW

    def test_urgent_keyword(self):
        match = detect_urgency("URGENT: wire transfer", "", "x@y.com")
        assert match.value == Priority.URGENT
        assert match.confidence == 0.9

    def test_important_keyword(self):
        assert detect_urgency("Deadline Friday", "", "x@y.com").value == Priority.IMPORTANT

    def test_falls_back_to_ai(self):
        match = detect_urgency("Hello", "", "x@y.com", Priority.IMPORTANT)
        assert match.value == Priority.IMPORTANT
        assert match.confidence == 0.7

    def test_default_normal(self):
        match = detect_urgency("Hello", "", "x@y.com", Priority.LOW)
        assert match.value == Priority.NORMAL
        assert match.confidence == 0.6


class TestExtraction:
    def test_amounts_dates_people_companies(self):
        entities = extract_entities(
            "Acme Corp owes $50,000 and 1,200 USD by Jan 15, 2026. Contact jane@acme.com or 3/4/2026."
        )
        assert entities.amounts == ["$50,000", "1,200 USD"]
        assert "Acme Corp" in entities.companies
        assert entities.people == ["jane@acme.com"]
        assert entities.dates == ["Jan 15, 2026", "3/4/2026"]

    def test_empty_body_never_raises(self):
        entities = extract_entities("")
        assert entities.amounts == []
        assert extract_tickers("") == []

    def test_tickers_skip_stop_words_and_dedupe(self):
        tickers = extract_tickers("FYI the CEO likes AAPL and $TSLA. AAPL again.", extra=["btc", "TSLA"])
        assert tickers == ["AAPL", "TSLA", "BTC"]

    def test_tickers_capped(self):
        body = " ".join(f"T{chr(65 + i // 26)}{chr(65 + i % 26)}" for i in range(40))
        assert len(extract_tickers(body)) == 20

    def test_split_signals_against_watchlist(self):
        confirmed, candidates = split_signals(["AAPL", "MSFT"], {"aapl"})
        assert confirmed == ["AAPL"]
        assert candidates == ["MSFT"]


class TestSentiment:
    def test_neutral_without_keywords(self):
        assert detect_sentiment("The report is attached.") == (Sentiment.NEUTRAL, 0.5)

    def test_tie_is_neutral(self):
        assert detect_sentiment("Great, but there is a problem.") == (Sentiment.NEUTRAL, 0.6)

    def test_positive_confidence_grows_and_caps(self):
        sentiment, confidence = detect_sentiment("Thank you, this is great and excellent")
        assert sentiment == Sentiment.POSITIVE
        assert 0.5 < confidence <= 0.95

        many = "great excellent wonderful fantastic amazing perfect awesome delighted pleased happy"
        assert detect_sentiment(many)[1] == 0.95

    def test_negative(self):
        assert detect_sentiment("This is unacceptable, a terrible mistake")[0] == Sentiment.NEGATIVE


class TestReplyValidation:
    def test_valid_reply(self):
        assert validate_reply("Thanks, I will get back to you tomorrow.").valid is True

    def test_empty_and_short(self):
        assert validate_reply("   ").valid is False
        assert validate_reply("Ok").valid is False

    def test_too_long(self):
        assert validate_reply("x" * 50_001).valid is False

    def test_placeholders(self):
        for content in ("Dear [NAME], thanks for writing", "Hi {{first_name}}, sure thing", "[INSERT DATE] works"):
            result = validate_reply(content)
            assert result.valid is False
            assert "placeholder" in result.reason
