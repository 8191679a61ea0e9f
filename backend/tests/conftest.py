"""
Shared in-memory collaborators for pipeline and route tests.

None of these perform network I/O. Each records the calls it receives so
tests can assert on what the pipeline asked for.
"""
import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from bizquery.clients.credentials import AccessToken
from bizquery.clients.financials import Picture
from bizquery.core.errors import UpstreamAuthError, UpstreamError


class DummyCredential:
    def __init__(self, token: str = "token", error: Optional[Exception] = None):
        self._token = token
        self._error = error
        self.audiences: List[str] = []

    async def get_token(self, audience: str) -> AccessToken:
        self.audiences.append(audience)
        if self._error is not None:
            raise self._error
        return AccessToken(token=self._token, expires_on=0)


class DummyCompletion:
    """Returns queued responses per agent; records every prompt."""

    def __init__(
        self,
        intent: Any = None,
        answer: str = "Here is your answer.",
        intent_error: Optional[Exception] = None,
        answer_error: Optional[Exception] = None,
    ):
        self._intent = intent
        self._answer = answer
        self._intent_error = intent_error
        self._answer_error = answer_error
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, prompt: str, agent: str = "answer", max_tokens: Optional[int] = None, temperature=None) -> str:
        self.calls.append({"prompt": prompt, "agent": agent, "max_tokens": max_tokens})
        if agent == "intent":
            if self._intent_error is not None:
                raise self._intent_error
            if isinstance(self._intent, str):
                return self._intent
            return json.dumps(self._intent or {})
        if self._answer_error is not None:
            raise self._answer_error
        return self._answer

    @property
    def prompts(self) -> Dict[str, str]:
        return {call["agent"]: call["prompt"] for call in self.calls}


class DummyDirectory:
    def __init__(
        self,
        users: Optional[List[Dict[str, Any]]] = None,
        messages: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        failing_users: tuple = (),
        list_error: Optional[Exception] = None,
    ):
        self.users = users or []
        self.messages = messages or {}
        self.failing_users = set(failing_users)
        self.list_error = list_error
        self.message_calls: List[Dict[str, Any]] = []
        self.search_calls: List[str] = []

    async def list_users(self, fields=None):
        if self.list_error is not None:
            raise self.list_error
        return list(self.users)

    async def list_messages(self, user_id: str, top: int = 10, fields=None):
        self.message_calls.append({"user_id": user_id, "top": top})
        if user_id in self.failing_users:
            raise UpstreamError("mailbox unavailable", service="directory", upstream_status=500)
        return list(self.messages.get(user_id, []))[:top]

    async def search(self, query: str, entity_types=None, size: int = 10):
        self.search_calls.append(query)
        return [{"total": 1, "hits": [{"summary": query}]}]


class DummyFinancials:
    """
    Financial provider fake.

    records: {method_name: {company_id: [records]}}; failing: company ids
    whose per-company calls raise.
    """

    def __init__(
        self,
        companies: Optional[List[Dict[str, Any]]] = None,
        records: Optional[Dict[str, Dict[str, Any]]] = None,
        failing: tuple = (),
        pictures: Optional[Dict[str, bytes]] = None,
        companies_error: Optional[Exception] = None,
    ):
        self.companies = companies if companies is not None else []
        self.records = records or {}
        self.failing = set(failing)
        self.pictures = pictures or {}
        self.companies_error = companies_error
        self.calls: List[Dict[str, Any]] = []

    async def list_companies(self):
        self.calls.append({"method": "list_companies"})
        if self.companies_error is not None:
            raise self.companies_error
        return list(self.companies)

    def _call(self, method: str, company_id: str, **kwargs):
        self.calls.append({"method": method, "company_id": company_id, **kwargs})
        if company_id in self.failing:
            raise UpstreamError(f"{method} failed for {company_id}", service="financial", upstream_status=500)
        value = self.records.get(method, {}).get(company_id, [])
        top = kwargs.get("top")
        if isinstance(value, list) and top is not None:
            return list(value)[:top]
        return value

    async def list_items(self, company_id, top=25):
        return self._call("list_items", company_id, top=top)

    async def get_item(self, company_id, item_id):
        return dict(self._call("get_item", company_id, item_id=item_id) or {"id": item_id})

    async def list_customers(self, company_id, top=25):
        return self._call("list_customers", company_id, top=top)

    async def get_customer(self, company_id, customer_id):
        return dict(self._call("get_customer", company_id, customer_id=customer_id) or {"id": customer_id})

    async def list_sales_invoices(self, company_id, top=25):
        return self._call("list_sales_invoices", company_id, top=top)

    async def list_purchase_invoices(self, company_id, top=25):
        return self._call("list_purchase_invoices", company_id, top=top)

    async def list_item_categories(self, company_id, top=100):
        return self._call("list_item_categories", company_id, top=top)

    async def list_units_of_measure(self, company_id, top=100):
        return self._call("list_units_of_measure", company_id, top=top)

    async def list_item_ledger_entries(self, company_id, top=50, item_id=None):
        return self._call("list_item_ledger_entries", company_id, top=top, item_id=item_id)

    async def list_customer_ledger_entries(self, company_id, top=50, customer_id=None):
        return self._call("list_customer_ledger_entries", company_id, top=top, customer_id=customer_id)

    async def get_item_picture(self, company_id, item_id, size="small"):
        self._call("get_item_picture", company_id, item_id=item_id)
        return Picture(content_type="image/png", data=self.pictures.get(company_id, b""))

    async def get_customer_picture(self, company_id, customer_id):
        self._call("get_customer_picture", company_id, customer_id=customer_id)
        return Picture(content_type="image/jpeg", data=self.pictures.get(company_id, b""))

    def methods_called(self) -> List[str]:
        return [call["method"] for call in self.calls]


def make_orchestrator(
    completion: DummyCompletion,
    directory: Optional[DummyDirectory] = None,
    financials: Optional[DummyFinancials] = None,
    directory_credential: Optional[DummyCredential] = None,
    financial_credential: Optional[DummyCredential] = None,
):
    from bizquery.services.ai.orchestration import QueryOrchestrator

    directory = directory or DummyDirectory()
    financials = financials or DummyFinancials()
    return QueryOrchestrator(
        directory_credential=directory_credential or DummyCredential("dir-token"),
        financial_credential=financial_credential or DummyCredential("bc-token"),
        completion=completion,
        directory_factory=lambda token: directory,
        financials_factory=lambda token: financials,
    )


@pytest.fixture
def companies() -> List[Dict[str, Any]]:
    return [
        {"id": "c1", "displayName": "Acme Ltd"},
        {"id": "c2", "name": "Globex"},
    ]


@pytest.fixture
def auth_error() -> Callable[[], UpstreamAuthError]:
    def _make() -> UpstreamAuthError:
        return UpstreamAuthError(
            "Insufficient privileges",
            service="identity",
            upstream_status=401,
            hint="Required permissions: User.Read.All (Application)",
        )

    return _make
