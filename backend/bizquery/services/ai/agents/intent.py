"""
Intent classification agent.

Responsibilities:
- Ask the language model which fetch strategy fits a raw query
- Extract and validate the JSON object in its reply, field by field
- Degrade to DEFAULT_INTENT on any failure; never raise to the caller

This agent never talks to the directory or financial services.
"""
import json
import math
from typing import Any, Dict, Optional, Tuple

from bizquery.core.errors import ClassificationError
from bizquery.core.logging import get_logger
from bizquery.core.metrics import record_intent_classification, record_intent_fallback
from bizquery.services.ai.schema import (
    BestFit,
    CUSTOMER_STRATEGIES,
    DEFAULT_INTENT,
    DEFAULT_TOP_COMPANIES,
    DEFAULT_TOP_RECORDS,
    IntentLimits,
    QueryIntent,
    TOP_COMPANIES_RANGE,
    TOP_RECORDS_RANGE,
)

logger = get_logger(__name__)

CLASSIFIER_MAX_TOKENS = 400

PROMPT_TEMPLATE = """You route questions about a company's people, mailboxes and ERP data.
Query: "{query}"

Choose the single best data fetch for this query. bestFit MUST be exactly one of:
{options}

Respond with a JSON object only, no other text, with these keys:
- bestFit: one of the values above, copied exactly
- needsUsers: true if the query mentions users, employees, staff, team members, people or specific person names
- needsInbox: true if the query needs recent emails / messages of people
- specificUserNames: array of person names mentioned in the query (first, last or full names); [] if none
- companyHint: company name mentioned in the query, or null
- itemHint: item / product id or number mentioned in the query, or null
- customerHint: customer id or number mentioned in the query, or null
- limits: {{"topCompanies": 1-10, "topRecords": 1-100}}

Example: {{"bestFit":"8. Get Sales Invoices","needsUsers":false,"needsInbox":false,"specificUserNames":[],"companyHint":"Acme","itemHint":null,"customerHint":null,"limits":{{"topCompanies":3,"topRecords":25}}}}"""


def build_classifier_prompt(query: str) -> str:
    options = "\n".join(f"- {member.value}" for member in BestFit)
    return PROMPT_TEMPLATE.format(query=query.replace('"', '\\"'), options=options)


def extract_first_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} substring of text, or None.

    Braces inside JSON string literals (including escaped quotes) do not
    count towards the balance.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def _truthy(value: Any) -> bool:
    """Only None, False, zero, NaN and "" are false; empty lists and objects count as set."""
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0 and not math.isnan(value)
    return True


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _clamp_limit(value: Any, bounds: Tuple[int, int], default: int) -> int:
    """Finite numbers are clamped into bounds; anything else gives the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value):
        return default
    low, high = bounds
    return max(low, min(high, int(value)))


def coerce_intent(parsed: Dict[str, Any]) -> QueryIntent:
    """Build a QueryIntent from a parsed JSON object, validating each field."""
    best_fit = BestFit.parse(parsed.get("bestFit")) or DEFAULT_INTENT.best_fit

    force_customer_context = best_fit in CUSTOMER_STRATEGIES
    needs_inbox = _truthy(parsed.get("needsInbox")) or force_customer_context
    needs_users = _truthy(parsed.get("needsUsers")) or force_customer_context

    names = parsed.get("specificUserNames")
    if isinstance(names, list) and all(isinstance(name, str) for name in names):
        specific_user_names = tuple(names)
    else:
        specific_user_names = ()

    raw_limits = parsed.get("limits")
    if not isinstance(raw_limits, dict):
        raw_limits = {}
    limits = IntentLimits(
        top_companies=_clamp_limit(raw_limits.get("topCompanies"), TOP_COMPANIES_RANGE, DEFAULT_TOP_COMPANIES),
        top_records=_clamp_limit(raw_limits.get("topRecords"), TOP_RECORDS_RANGE, DEFAULT_TOP_RECORDS),
    )

    return QueryIntent(
        best_fit=best_fit,
        needs_inbox=needs_inbox,
        needs_users=needs_users,
        specific_user_names=specific_user_names,
        company_hint=_optional_str(parsed.get("companyHint")),
        item_hint=_optional_str(parsed.get("itemHint")),
        customer_hint=_optional_str(parsed.get("customerHint")),
        limits=limits,
    )


def parse_intent_response(text: str) -> QueryIntent:
    """
    Turn raw model output into an intent.

    Raises:
        ClassificationError: no JSON object, invalid JSON, or not an object
    """
    candidate = extract_first_json_object(text or "")
    if candidate is None:
        raise ClassificationError("no_json_object", "No JSON object in classifier output", raw_output=text)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ClassificationError("invalid_json", f"Invalid JSON: {exc}", raw_output=text) from exc
    if not isinstance(parsed, dict):
        raise ClassificationError("not_an_object", "Classifier JSON is not an object", raw_output=text)
    return coerce_intent(parsed)


class IntentClassificationAgent:
    """Classifies a raw query into a QueryIntent using a text completion service."""

    def __init__(self, completion_service):
        self._completion = completion_service

    async def classify(self, query: str) -> QueryIntent:
        """
        Classify user intent for a query.

        Never raises: completion failures and unusable responses are logged,
        counted, and replaced by DEFAULT_INTENT.
        """
        prompt = build_classifier_prompt(query)

        try:
            response_text = await self._completion.complete(
                prompt,
                agent="intent",
                max_tokens=CLASSIFIER_MAX_TOKENS,
            )
        except Exception as exc:
            record_intent_fallback("completion_error")
            logger.warning(
                "intent_completion_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return DEFAULT_INTENT

        try:
            intent = parse_intent_response(response_text)
        except ClassificationError as exc:
            record_intent_fallback(exc.reason)
            logger.warning(
                "intent_response_unusable",
                reason=exc.reason,
                error=str(exc),
                raw=(response_text or "")[:500],
            )
            return DEFAULT_INTENT

        record_intent_classification(intent.best_fit.value)
        logger.info("intent_classified", intent=intent.to_payload())
        return intent
