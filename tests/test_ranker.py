"""Tests for knowledge ranking and listing detection."""

import datetime as dt
import uuid

from supportdesk.knowledge import KnowledgeItem, detect_listing_intent, rank
from supportdesk.knowledge.listing import listing_types
from supportdesk.knowledge.ranker import MAX_RESULTS, MIN_SCORE, score_item, tokenize
from supportdesk.knowledge.repository import InMemoryKnowledgeRepository, SqlAlchemyKnowledgeRepository


def _faq(question, answer, days_ago=0, category=""):
    return KnowledgeItem(
        kind="faq",
        id=uuid.uuid4(),
        fields={"question": question, "answer": answer, "category": category},
        created_at=dt.datetime(2024, 1, 31, tzinfo=dt.timezone.utc) - dt.timedelta(days=days_ago),
        data={"question": question, "answer": answer, "category": category},
    )


def _product(name, description="", days_ago=0):
    return KnowledgeItem(
        kind="product",
        id=uuid.uuid4(),
        fields={"name": name, "description": description, "category": "", "sku": ""},
        created_at=dt.datetime(2024, 1, 31) - dt.timedelta(days=days_ago),
        data={"name": name, "description": description},
    )


def test_tokenize_drops_stop_words_short_tokens_and_punctuation():
    assert tokenize("What are your opening hours, please?") == ["opening", "hours"]
    assert tokenize("Is it ok?") == []


def test_listing_intent_per_type():
    assert detect_listing_intent("What products do you sell?", "product")
    assert detect_listing_intent("Show me all your services", "service")
    assert not detect_listing_intent("What products do you sell?", "policy")
    assert listing_types("list your faqs and all your policies") == ["faq", "policy"]


def test_listing_query_returns_most_recent_items_of_requested_type():
    items = [_product(f"Item {n}", days_ago=n) for n in range(7)] + [_faq("Hours?", "9 to 5")]

    ranked = rank("What products do you sell?", items)

    assert [item.fields["name"] for item in ranked] == [f"Item {n}" for n in range(5)]
    assert all(item.is_listing_query for item in ranked)
    assert all(item.relevance_score == MIN_SCORE for item in ranked)


def test_whole_word_match_outranks_substring_match():
    exact = _faq("Do you ship abroad?", "Yes, we ship worldwide.")
    partial = _faq("Shipping times", "Orders leave in two days.")

    ranked = rank("ship", [partial, exact])

    assert ranked[0].id == exact.id
    assert ranked[0].relevance_score > ranked[1].relevance_score


def test_field_weights_favour_question_over_category():
    item = _faq("Giftwrap options", "Available in store.", category="gifts")
    assert score_item(item, ["gift"]) == 3 + 1  # substring in question and category


def test_items_without_any_match_are_dropped():
    items = [_faq("Store hours", "9 to 5"), _product("Backpack", "40 litres")]

    assert rank("refund warranty", items) == []


def test_query_without_tokens_falls_back_to_recent_items():
    items = [_faq(f"Q{n}", "A", days_ago=n) for n in range(10)]

    ranked = rank("is it?", items)

    assert len(ranked) == 5
    assert [item.fields["question"] for item in ranked] == ["Q0", "Q1", "Q2", "Q3", "Q4"]


def test_results_are_capped_and_sorted():
    items = [_faq(f"Tent guide {n}", "tent " * (n % 3)) for n in range(12)]

    ranked = rank("tent", items)

    assert len(ranked) == MAX_RESULTS
    scores = [item.relevance_score for item in ranked]
    assert scores == sorted(scores, reverse=True)


def test_ranking_is_deterministic():
    items = [_faq("Tent care", "Dry your tent."), _faq("Tent sizes", "Two or four people.")]

    assert [i.id for i in rank("tent", items)] == [i.id for i in rank("tent", items)]
    assert rank("tent", []) == []


def test_in_memory_repository_scopes_items_by_business():
    business = uuid.uuid4()
    repo = InMemoryKnowledgeRepository({business: [_faq("Hours", "9 to 5")]})

    assert len(repo.load_active(business)) == 1
    assert repo.load_active(uuid.uuid4()) == []


def test_sqlalchemy_repository_loads_only_active_items(seeded, db):
    items = SqlAlchemyKnowledgeRepository(db).load_active(seeded.business_id)

    kinds = sorted(item.kind for item in items)
    assert kinds == ["faq", "policy", "product", "product", "service"]
    assert "Retired Tent" not in {item.title for item in items}
    backpack = next(item for item in items if item.title == "Trail Backpack")
    assert backpack.data["price"] == {"amount": 89.0, "currency": "USD"}
    assert SqlAlchemyKnowledgeRepository(db).load_active(seeded.offline_business_id) == []
