"""
Pydantic models for the query pipeline.

QueryIntent is produced once per request by the intent classifier and is
immutable afterwards. Every field has a safe default, so an intent can be
built from nothing and the orchestrator never sees a half-populated one.
"""
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

TOP_COMPANIES_RANGE: Tuple[int, int] = (1, 10)
TOP_RECORDS_RANGE: Tuple[int, int] = (1, 100)
DEFAULT_TOP_COMPANIES = 3
DEFAULT_TOP_RECORDS = 25

_NUMBER_PREFIX = re.compile(r"^\s*(\d+)\s*[.)]?\s*")


class BestFit(str, Enum):
    """The fetch strategies the classifier can choose from."""

    GET_COMPANIES = "1. Get Companies"
    GET_ITEMS = "2. Get Items"
    GET_SINGLE_ITEM = "3. Get Single Item"
    GET_CUSTOMERS = "4. Get Customers"
    GET_SINGLE_CUSTOMER = "5. Get Single Customer"
    GET_ITEM_CATEGORIES = "6. Get Item Categories"
    GET_UNITS_OF_MEASURE = "7. Get Units of Measure"
    GET_SALES_INVOICES = "8. Get Sales Invoices"
    GET_PURCHASE_INVOICES = "9. Get Purchase Invoices"
    GET_ITEM_PICTURE = "10. Get Item Picture"
    GET_CUSTOMER_PICTURE = "11. Get Customer Picture"

    @property
    def number(self) -> int:
        return int(self.value.split(".", 1)[0])

    @property
    def label(self) -> str:
        """Label without the number, e.g. "Get Sales Invoices"."""
        return self.value.split(". ", 1)[1]

    @classmethod
    def parse(cls, value: Any) -> Optional["BestFit"]:
        """
        Resolve a model-supplied label.

        Accepts "8. Get Sales Invoices", "Get Sales Invoices", "8" or
        "8)", case-insensitively. Returns None for anything else.
        """
        if not isinstance(value, str):
            return None
        text = value.strip()
        if not text:
            return None

        match = _NUMBER_PREFIX.match(text)
        rest = text[match.end():] if match else text
        wanted_label = rest.strip().lower()

        if match:
            number = int(match.group(1))
            by_number = next((m for m in cls if m.number == number), None)
            if by_number is None:
                return None
            # "8" alone, or "8. Get Sales Invoices" with a consistent label
            if not wanted_label or wanted_label == by_number.label.lower():
                return by_number
            return None

        return next((m for m in cls if m.label.lower() == wanted_label), None)


CUSTOMER_STRATEGIES = frozenset({BestFit.GET_CUSTOMERS, BestFit.GET_SINGLE_CUSTOMER})


class IntentLimits(BaseModel):
    """Size limits chosen for one query."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    top_companies: int = Field(
        DEFAULT_TOP_COMPANIES,
        alias="topCompanies",
        ge=TOP_COMPANIES_RANGE[0],
        le=TOP_COMPANIES_RANGE[1],
    )
    top_records: int = Field(
        DEFAULT_TOP_RECORDS,
        alias="topRecords",
        ge=TOP_RECORDS_RANGE[0],
        le=TOP_RECORDS_RANGE[1],
    )


class QueryIntent(BaseModel):
    """
    Structured intent for one query.

    Serialized (by_alias) shape:
    {
      "bestFit": "8. Get Sales Invoices",
      "needsInbox": false,
      "needsUsers": false,
      "specificUserNames": [],
      "companyHint": null,
      "itemHint": null,
      "customerHint": null,
      "limits": {"topCompanies": 3, "topRecords": 25}
    }
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    best_fit: BestFit = Field(BestFit.GET_COMPANIES, alias="bestFit")
    needs_inbox: bool = Field(False, alias="needsInbox")
    needs_users: bool = Field(False, alias="needsUsers")
    specific_user_names: Tuple[str, ...] = Field((), alias="specificUserNames")
    company_hint: Optional[str] = Field(None, alias="companyHint")
    item_hint: Optional[str] = Field(None, alias="itemHint")
    customer_hint: Optional[str] = Field(None, alias="customerHint")
    limits: IntentLimits = Field(default_factory=IntentLimits)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


DEFAULT_INTENT = QueryIntent()


class DirectoryUser(BaseModel):
    id: str
    display_name: str = Field("", alias="displayName")
    mail: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class InboxSummary(BaseModel):
    """A user's most recent messages, bounded when fetched."""

    user_id: str = Field(..., alias="userId")
    display_name: str = Field("", alias="displayName")
    mail: Optional[str] = None
    email_inbox: List[Dict[str, Any]] = Field(default_factory=list, alias="emailInbox")

    model_config = ConfigDict(populate_by_name=True)


class QueryAnswer(BaseModel):
    """Orchestrator output: the answer text plus a compact data summary."""

    answer: str
    summary: Dict[str, Any] = Field(default_factory=dict)
