"""Tests for escalation scoring, intent classification and case extraction."""

import pytest

from supportdesk.escalation.cases import extract_case_number
from supportdesk.escalation.intents import Intent, classify
from supportdesk.escalation.scoring import (
    ConversationTurn,
    EscalationTier,
    matched_complex_topics,
    score_message,
    tier_for,
)


@pytest.mark.parametrize(
    "score,tier",
    [
        (0, EscalationTier.BASELINE),
        (24, EscalationTier.BASELINE),
        (25, EscalationTier.HANDLE_GRACEFULLY),
        (50, EscalationTier.SUGGEST_ALTERNATIVES),
        (74, EscalationTier.SUGGEST_ALTERNATIVES),
        (75, EscalationTier.OFFER_ESCALATION),
        (99, EscalationTier.OFFER_ESCALATION),
        (100, EscalationTier.IMMEDIATE),
    ],
)
def test_tier_thresholds(score, tier):
    assert tier_for(score) is tier


def test_explicit_request_is_immediate():
    result = score_message("I want to speak to a manager")

    assert result.score == 100
    assert result.tier is EscalationTier.IMMEDIATE
    assert result.breakdown["explicit_request"] == 100


def test_score_is_clamped_to_one_hundred():
    result = score_message("I am furious and this is urgent, I want a refund or my lawyer will sue")

    assert result.score == 100
    assert sum(result.breakdown.values()) > 100


def test_plain_question_scores_baseline():
    result = score_message("What are your store hours?")

    assert result.score == 0
    assert result.tier is EscalationTier.BASELINE
    assert result.breakdown == {}


def test_adding_frustration_never_lowers_the_score():
    calm = score_message("Where is my order?")
    upset = score_message("Where is my order? I'm really frustrated")

    assert calm.score == 10
    assert upset.score == 55
    assert upset.score >= calm.score


def test_prior_escalation_attempts_add_twenty_each():
    assert score_message("thanks", escalation_attempts=2).breakdown["prior_attempts"] == 40


def test_unhelpful_history_and_repeated_questions():
    history = [
        ConversationTurn("customer", "Do you rent kayaks?"),
        ConversationTurn("assistant", "Unfortunately I don't have that information."),
        ConversationTurn("customer", "What about canoes?"),
        ConversationTurn("assistant", "I'm not sure about canoes."),
        ConversationTurn("customer", "Paddles?"),
    ]

    result = score_message("Anything at all?", history)

    assert result.breakdown["unhelpful_answers"] == 35
    assert result.breakdown["repeated_questions"] == 15


def _history(customers, unhelpful, helpful=0):
    turns = [ConversationTurn("customer", f"Question {n}?") for n in range(customers)]
    turns += [ConversationTurn("assistant", "Sorry, I don't know about that.") for _ in range(unhelpful)]
    turns += [ConversationTurn("assistant", "We open at 9am.") for _ in range(helpful)]
    return turns


@pytest.mark.parametrize(
    "customers,unhelpful,helpful,customer_turns,expected",
    [
        (0, 0, 1, None, 0),
        (1, 1, 0, None, 15),
        (1, 1, 2, None, 15),
        (2, 2, 0, None, 35),
        (3, 3, 0, None, 50),
        (4, 4, 0, None, 50),
        (5, 1, 4, None, 15),
        (5, 2, 3, None, 55),
        (5, 3, 2, None, 70),
        (3, 3, 0, 5, 70),
        (2, 2, 0, 7, 55),
        (3, 3, 0, 4, 50),
    ],
)
def test_unhelpful_answer_buckets(customers, unhelpful, helpful, customer_turns, expected):
    history = _history(customers, unhelpful, helpful)

    result = score_message("ok", history, customer_turns=customer_turns)

    assert result.breakdown.get("unhelpful_answers", 0) == expected


@pytest.mark.parametrize(
    "customers,customer_turns,expected",
    [(2, None, 0), (3, None, 15), (1, 3, 15), (2, 2, 0)],
)
def test_repeated_questions_use_the_session_count(customers, customer_turns, expected):
    result = score_message("ok", _history(customers, 0), customer_turns=customer_turns)

    assert result.breakdown.get("repeated_questions", 0) == expected


def test_every_rule_firing_still_clamps_to_exactly_one_hundred():
    message = "I am furious, this is urgent: get me an agent about my order refund"

    result = score_message(message, _history(5, 3), escalation_attempts=3)

    assert set(result.breakdown) == {
        "explicit_request",
        "frustration",
        "prior_attempts",
        "urgency",
        "repeated_questions",
        "unhelpful_answers",
        "critical_info",
        "complex_topics",
    }
    assert sum(result.breakdown.values()) > 100
    assert result.score == 100
    assert result.tier is EscalationTier.IMMEDIATE


@pytest.mark.parametrize(
    "message,attempts",
    [("", 0), ("ok", -3), ("thanks", -100), ("What are your hours?", 0)],
)
def test_score_is_never_negative(message, attempts):
    result = score_message(message, escalation_attempts=attempts)

    assert 0 <= result.score <= 100
    assert "prior_attempts" not in result.breakdown


def test_drone_delivery_hits_shipping_topic():
    result = score_message("Do you offer drone delivery?")

    assert result.complex_topics == ("shipping",)
    assert result.score == 60
    assert result.tier is EscalationTier.SUGGEST_ALTERNATIVES


def test_complex_topics_match_on_word_starts():
    assert "legal" not in matched_complex_topics("I have an issue with my tissue order")
    assert "legal" in matched_complex_topics("I will sue you")
    assert "returns_refunds" in matched_complex_topics("Can I get a refund?")


@pytest.mark.parametrize(
    "message,intent",
    [
        ("Hi there", Intent.GREETING),
        ("I want to talk to an agent about my case 123456", Intent.ESCALATION_REQUEST),
        ("Can I speak to a human?", Intent.ESCALATION_REQUEST),
        ("What's the status of my ticket?", Intent.CASE_FOLLOWUP),
        ("My order arrived broken", Intent.COMPLAINT),
        ("How much does the backpack cost?", Intent.PRICING_INQUIRY),
        ("Do you have tents?", Intent.INFORMATION_REQUEST),
    ],
)
def test_classify(message, intent):
    assert classify(message) is intent


@pytest.mark.parametrize(
    "text,expected",
    [
        ("What's the status of case 482910?", "482910"),
        ("My case number is 482910", "482910"),
        ("ticket #ab12cd34 please", "AB12CD34"),
        ("Reference: 771100", "771100"),
        ("it was #123456", "123456"),
        ("order 20240131XY never came", "20240131XY"),
        ("Please escalate to a supervisor", None),
        ("case 12345", None),
    ],
)
def test_extract_case_number(text, expected):
    assert extract_case_number(text) == expected
