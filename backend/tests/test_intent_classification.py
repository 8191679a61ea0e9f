"""
Unit tests for the intent classifier.

Tests verify:
- Valid classifier JSON becomes a QueryIntent
- Malformed or unusable output degrades to exactly the default intent
- Customer strategies force directory context
- Limits are clamped and non-numeric limits fall back to defaults
- Brace extraction respects JSON strings
- BestFit label parsing

These tests use in-memory stubs only and do NOT perform real HTTP calls.
"""
import math

import pytest

from bizquery.core.errors import ClassificationError, CompletionServiceError
from bizquery.services.ai.agents.intent import (
    CLASSIFIER_MAX_TOKENS,
    IntentClassificationAgent,
    build_classifier_prompt,
    coerce_intent,
    extract_first_json_object,
    parse_intent_response,
)
from bizquery.services.ai.schema import BestFit, DEFAULT_INTENT, QueryIntent

from conftest import DummyCompletion


@pytest.mark.asyncio
async def test_classify_valid_response():
    """A well-formed response is carried over field by field."""
    completion = DummyCompletion(intent={
        "bestFit": "8. Get Sales Invoices",
        "needsUsers": False,
        "needsInbox": False,
        "specificUserNames": [],
        "companyHint": "Acme",
        "itemHint": None,
        "customerHint": None,
        "limits": {"topCompanies": 2, "topRecords": 25},
    })
    agent = IntentClassificationAgent(completion)

    intent = await agent.classify("show me invoices for Acme")

    assert isinstance(intent, QueryIntent)
    assert intent.best_fit is BestFit.GET_SALES_INVOICES
    assert intent.company_hint == "Acme"
    assert intent.limits.top_companies == 2
    assert intent.limits.top_records == 25
    assert completion.calls[0]["agent"] == "intent"
    assert completion.calls[0]["max_tokens"] == CLASSIFIER_MAX_TOKENS


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [
    "",
    "I think you want invoices.",
    "{not json at all}",
    "[1, 2, 3]",
    '{"bestFit": "2. Get Items"',
])
async def test_classify_malformed_output_returns_default(raw):
    agent = IntentClassificationAgent(DummyCompletion(intent=raw))

    intent = await agent.classify("anything")

    assert intent == DEFAULT_INTENT


@pytest.mark.asyncio
async def test_classify_completion_failure_returns_default():
    completion = DummyCompletion(intent_error=CompletionServiceError("model down"))
    agent = IntentClassificationAgent(completion)

    assert await agent.classify("show me items") == DEFAULT_INTENT


def test_default_intent_shape():
    payload = DEFAULT_INTENT.to_payload()

    assert payload == {
        "bestFit": "1. Get Companies",
        "needsInbox": False,
        "needsUsers": False,
        "specificUserNames": [],
        "companyHint": None,
        "itemHint": None,
        "customerHint": None,
        "limits": {"topCompanies": 3, "topRecords": 25},
    }


@pytest.mark.parametrize("label", ["4. Get Customers", "5. Get Single Customer"])
def test_customer_strategies_force_directory_context(label):
    intent = coerce_intent({"bestFit": label, "needsInbox": False, "needsUsers": False})

    assert intent.needs_inbox is True
    assert intent.needs_users is True


@pytest.mark.parametrize("value,expected", [
    ("yes", True),
    ("false", True),
    ("0", True),
    ([], True),
    ({}, True),
    (1, True),
    (True, True),
    (0, False),
    (0.0, False),
    (math.nan, False),
    ("", False),
    (None, False),
    (False, False),
])
def test_flags_are_truthiness_coerced(value, expected):
    intent = coerce_intent({"bestFit": "2. Get Items", "needsInbox": value, "needsUsers": value})

    assert intent.needs_inbox is expected
    assert intent.needs_users is expected


def test_unknown_best_fit_falls_back_to_companies():
    intent = coerce_intent({"bestFit": "12. Get Vendors", "itemHint": "1000"})

    assert intent.best_fit is BestFit.GET_COMPANIES
    assert intent.item_hint == "1000"


@pytest.mark.parametrize("limits,expected", [
    ({"topCompanies": 50, "topRecords": 1000}, (10, 100)),
    ({"topCompanies": 0, "topRecords": -5}, (1, 1)),
    ({"topCompanies": 2.9, "topRecords": 12.2}, (2, 12)),
    ({"topCompanies": "5", "topRecords": "lots"}, (3, 25)),
    ({"topCompanies": True, "topRecords": None}, (3, 25)),
    ({"topCompanies": math.inf, "topRecords": math.nan}, (3, 25)),
    ({}, (3, 25)),
    ("not-a-dict", (3, 25)),
])
def test_limits_clamped(limits, expected):
    intent = coerce_intent({"bestFit": "2. Get Items", "limits": limits})

    assert (intent.limits.top_companies, intent.limits.top_records) == expected


def test_non_string_fields_dropped():
    intent = coerce_intent({
        "bestFit": "3. Get Single Item",
        "specificUserNames": ["Ann", 7],
        "companyHint": 12,
        "itemHint": ["x"],
        "customerHint": {"id": "1"},
    })

    assert intent.specific_user_names == ()
    assert intent.company_hint is None
    assert intent.item_hint is None
    assert intent.customer_hint is None


def test_specific_user_names_kept():
    intent = coerce_intent({"bestFit": "1. Get Companies", "specificUserNames": ["Ann", "Bob Smith"]})

    assert intent.specific_user_names == ("Ann", "Bob Smith")


class TestJsonExtraction:
    def test_first_object_in_prose(self):
        text = 'Sure! Here you go: {"a": 1, "b": {"c": 2}} and {"d": 3}'

        assert extract_first_json_object(text) == '{"a": 1, "b": {"c": 2}}'

    def test_braces_inside_strings_ignored(self):
        text = '{"hint": "use } and { freely", "escaped": "quote \\" }"}'

        assert extract_first_json_object(text) == text

    def test_unbalanced_prefix_skipped(self):
        text = '{ broken {"bestFit": "2. Get Items"}'

        assert extract_first_json_object(text) == '{"bestFit": "2. Get Items"}'

    def test_no_object(self):
        assert extract_first_json_object("no braces here") is None

    def test_code_fenced_response(self):
        text = '```json\n{"bestFit": "9. Get Purchase Invoices"}\n```'

        intent = parse_intent_response(text)

        assert intent.best_fit is BestFit.GET_PURCHASE_INVOICES

    @pytest.mark.parametrize("text,reason", [
        ("nothing", "no_json_object"),
        ("{'single': 'quotes'}", "invalid_json"),
    ])
    def test_parse_errors_carry_reason(self, text, reason):
        with pytest.raises(ClassificationError) as exc_info:
            parse_intent_response(text)

        assert exc_info.value.reason == reason


class TestBestFitParse:
    @pytest.mark.parametrize("value", [
        "8. Get Sales Invoices",
        "get sales invoices",
        "8",
        "8)",
        "  8. GET SALES INVOICES  ",
    ])
    def test_accepted_forms(self, value):
        assert BestFit.parse(value) is BestFit.GET_SALES_INVOICES

    @pytest.mark.parametrize("value", [None, 8, "", "12", "8. Get Items", "Sales"])
    def test_rejected_forms(self, value):
        assert BestFit.parse(value) is None

    def test_every_member_round_trips(self):
        for member in BestFit:
            assert BestFit.parse(member.value) is member
            assert BestFit.parse(member.label) is member
            assert BestFit.parse(str(member.number)) is member


def test_prompt_lists_every_option():
    prompt = build_classifier_prompt('invoices for "Acme"')

    for member in BestFit:
        assert member.value in prompt
    assert 'invoices for \\"Acme\\"' in prompt
