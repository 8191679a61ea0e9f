"""
Financial fetch strategies, one per BestFit value.

STRATEGIES maps every BestFit member to an async function taking a
StrategyContext and returning the financial payload for the grounding prompt.
Per-company work is isolated: a failing company becomes
{"companyId", "companyName", "error"} and the remaining companies still run.
Result lists always follow the order of the company list.
"""
import base64
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from bizquery.clients.financials import FinancialsClient, Picture
from bizquery.core.concurrency import gather_bounded
from bizquery.core.logging import get_logger
from bizquery.core.metrics import record_entity_fetch_failure
from bizquery.services.ai.schema import BestFit, QueryIntent

logger = get_logger(__name__)

# Listing size used when a single-entity lookup has no usable id
FALLBACK_LISTING_TOP = 5
LEDGER_ENTRIES_TOP = 25

_ENTITY_ID = re.compile(r"^[0-9a-fA-F-]{12,}$")


def looks_like_entity_id(value: Optional[str]) -> bool:
    """
    True when value can be passed to the financial API as an entity key.

    Accepts only strings of at least 12 characters made of hex digits and
    hyphens, which covers the GUIDs the financial service uses as ids.
    Item numbers ("1000"), names and short fragments are rejected, so those
    lookups fall back to a listing instead of a keyed GET.
    """
    return isinstance(value, str) and bool(_ENTITY_ID.match(value.strip()))


def company_name(company: Dict[str, Any]) -> str:
    return company.get("displayName") or company.get("name") or company.get("id") or ""


def encode_picture(picture: Picture) -> Dict[str, Any]:
    """Text-safe form of a picture: base64 content plus metadata."""
    return {
        "contentType": picture.content_type,
        "byteLength": len(picture.data),
        "base64": base64.b64encode(picture.data).decode("ascii"),
    }


@dataclass
class StrategyContext:
    financials: FinancialsClient
    companies: List[Dict[str, Any]]
    intent: QueryIntent
    concurrency: int = 4

    @property
    def top_records(self) -> int:
        return self.intent.limits.top_records


CompanyFetch = Callable[[str], Awaitable[Any]]
Strategy = Callable[[StrategyContext], Awaitable[Dict[str, Any]]]


async def for_each_company(
    ctx: StrategyContext,
    entity: str,
    result_key: str,
    fetch: CompanyFetch,
) -> List[Dict[str, Any]]:
    """
    Run fetch(company_id) for every company, isolating failures.

    Returns one entry per company, in company order:
    {"companyId", "companyName", result_key: <result>} or
    {"companyId", "companyName", "error": <message>}.
    """

    async def _one(company: Dict[str, Any]) -> Dict[str, Any]:
        company_id = company.get("id")
        entry: Dict[str, Any] = {"companyId": company_id, "companyName": company_name(company)}
        try:
            entry[result_key] = await fetch(company_id)
        except Exception as exc:
            record_entity_fetch_failure(entity)
            logger.warning(
                "company_fetch_failed",
                entity=entity,
                company_id=company_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            entry["error"] = str(exc)
        return entry

    return await gather_bounded(_one, ctx.companies, ctx.concurrency)


# -- strategies -------------------------------------------------------------

async def get_companies(ctx: StrategyContext) -> Dict[str, Any]:
    return {"companies": [{"id": c.get("id"), "name": company_name(c)} for c in ctx.companies]}


async def get_items(ctx: StrategyContext) -> Dict[str, Any]:
    entries = await for_each_company(
        ctx, "items", "items",
        lambda company_id: ctx.financials.list_items(company_id, top=ctx.top_records),
    )
    return {"itemsByCompany": entries}


async def _item_fallback_listing(ctx: StrategyContext) -> List[Dict[str, Any]]:
    top = min(ctx.top_records, FALLBACK_LISTING_TOP)
    entries = await for_each_company(
        ctx, "items", "items",
        lambda company_id: ctx.financials.list_items(company_id, top=top),
    )
    for entry in entries:
        entry["hint"] = f"No valid item id in query (itemHint={ctx.intent.item_hint!r}); showing a small sample"
    return entries


async def get_single_item(ctx: StrategyContext) -> Dict[str, Any]:
    item_id = ctx.intent.item_hint
    if not looks_like_entity_id(item_id):
        return {"itemsByCompany": await _item_fallback_listing(ctx)}

    item_id = item_id.strip()

    async def _fetch(company_id: str) -> Dict[str, Any]:
        item = await ctx.financials.get_item(company_id, item_id)
        try:
            item["ledgerEntries"] = await ctx.financials.list_item_ledger_entries(
                company_id,
                top=min(ctx.top_records, LEDGER_ENTRIES_TOP),
                item_id=item_id,
            )
        except Exception as exc:
            record_entity_fetch_failure("itemLedgerEntries")
            item["ledgerEntriesError"] = str(exc)
        return item

    return {"itemByCompany": await for_each_company(ctx, "item", "item", _fetch)}


async def get_customers(ctx: StrategyContext) -> Dict[str, Any]:
    entries = await for_each_company(
        ctx, "customers", "customers",
        lambda company_id: ctx.financials.list_customers(company_id, top=ctx.top_records),
    )
    return {"customersByCompany": entries}


async def _customer_fallback_listing(ctx: StrategyContext) -> List[Dict[str, Any]]:
    top = min(ctx.top_records, FALLBACK_LISTING_TOP)
    entries = await for_each_company(
        ctx, "customers", "customers",
        lambda company_id: ctx.financials.list_customers(company_id, top=top),
    )
    for entry in entries:
        entry["hint"] = (
            f"No valid customer id in query (customerHint={ctx.intent.customer_hint!r}); "
            "showing a small sample"
        )
    return entries


async def get_single_customer(ctx: StrategyContext) -> Dict[str, Any]:
    customer_id = ctx.intent.customer_hint
    if not looks_like_entity_id(customer_id):
        return {"customersByCompany": await _customer_fallback_listing(ctx)}

    customer_id = customer_id.strip()

    async def _fetch(company_id: str) -> Dict[str, Any]:
        customer = await ctx.financials.get_customer(company_id, customer_id)
        try:
            customer["ledgerEntries"] = await ctx.financials.list_customer_ledger_entries(
                company_id,
                top=min(ctx.top_records, LEDGER_ENTRIES_TOP),
                customer_id=customer_id,
            )
        except Exception as exc:
            record_entity_fetch_failure("customerLedgerEntries")
            customer["ledgerEntriesError"] = str(exc)
        return customer

    return {"customerByCompany": await for_each_company(ctx, "customer", "customer", _fetch)}


async def get_item_categories(ctx: StrategyContext) -> Dict[str, Any]:
    entries = await for_each_company(
        ctx, "itemCategories", "itemCategories",
        lambda company_id: ctx.financials.list_item_categories(company_id, top=ctx.top_records),
    )
    return {"itemCategoriesByCompany": entries}


async def get_units_of_measure(ctx: StrategyContext) -> Dict[str, Any]:
    entries = await for_each_company(
        ctx, "unitsOfMeasure", "unitsOfMeasure",
        lambda company_id: ctx.financials.list_units_of_measure(company_id, top=ctx.top_records),
    )
    return {"unitsOfMeasureByCompany": entries}


async def get_sales_invoices(ctx: StrategyContext) -> Dict[str, Any]:
    entries = await for_each_company(
        ctx, "salesInvoices", "salesInvoices",
        lambda company_id: ctx.financials.list_sales_invoices(company_id, top=ctx.top_records),
    )
    return {"salesInvoicesByCompany": entries}


async def get_purchase_invoices(ctx: StrategyContext) -> Dict[str, Any]:
    entries = await for_each_company(
        ctx, "purchaseInvoices", "purchaseInvoices",
        lambda company_id: ctx.financials.list_purchase_invoices(company_id, top=ctx.top_records),
    )
    return {"purchaseInvoicesByCompany": entries}


async def _collect_pictures(
    ctx: StrategyContext,
    entity: str,
    id_key: str,
    entity_id: str,
    fetch: Callable[[str], Awaitable[Picture]],
) -> List[Dict[str, Any]]:
    async def _fetch(company_id: str) -> Optional[Dict[str, Any]]:
        picture = await fetch(company_id)
        if not picture.data:
            return None
        return encode_picture(picture)

    entries = await for_each_company(ctx, entity, "picture", _fetch)
    for entry in entries:
        entry[id_key] = entity_id
    return entries


async def get_item_picture(ctx: StrategyContext) -> Dict[str, Any]:
    item_id = ctx.intent.item_hint
    if not looks_like_entity_id(item_id):
        return {
            "error": "Provide an item id (GUID) to fetch an item picture",
            "itemsByCompany": await _item_fallback_listing(ctx),
        }

    item_id = item_id.strip()
    entries = await _collect_pictures(
        ctx, "itemPicture", "itemId", item_id,
        lambda company_id: ctx.financials.get_item_picture(company_id, item_id),
    )
    return {
        "itemPictureByCompany": entries,
        "itemPictures": [e for e in entries if e.get("picture")],
    }


async def get_customer_picture(ctx: StrategyContext) -> Dict[str, Any]:
    customer_id = ctx.intent.customer_hint
    if not looks_like_entity_id(customer_id):
        return {
            "error": "Provide a customer id (GUID) to fetch a customer picture",
            "customersByCompany": await _customer_fallback_listing(ctx),
        }

    customer_id = customer_id.strip()
    entries = await _collect_pictures(
        ctx, "customerPicture", "customerId", customer_id,
        lambda company_id: ctx.financials.get_customer_picture(company_id, customer_id),
    )
    return {
        "customerPictureByCompany": entries,
        "customerPictures": [e for e in entries if e.get("picture")],
    }


STRATEGIES: Dict[BestFit, Strategy] = {
    BestFit.GET_COMPANIES: get_companies,
    BestFit.GET_ITEMS: get_items,
    BestFit.GET_SINGLE_ITEM: get_single_item,
    BestFit.GET_CUSTOMERS: get_customers,
    BestFit.GET_SINGLE_CUSTOMER: get_single_customer,
    BestFit.GET_ITEM_CATEGORIES: get_item_categories,
    BestFit.GET_UNITS_OF_MEASURE: get_units_of_measure,
    BestFit.GET_SALES_INVOICES: get_sales_invoices,
    BestFit.GET_PURCHASE_INVOICES: get_purchase_invoices,
    BestFit.GET_ITEM_PICTURE: get_item_picture,
    BestFit.GET_CUSTOMER_PICTURE: get_customer_picture,
}

_missing = set(BestFit) - set(STRATEGIES)
if _missing:
    raise RuntimeError(f"No fetch strategy for: {sorted(m.value for m in _missing)}")


async def run_strategy(ctx: StrategyContext) -> Dict[str, Any]:
    """Dispatch to the strategy selected by the intent."""
    strategy = STRATEGIES[ctx.intent.best_fit]
    logger.info(
        "strategy_started",
        best_fit=ctx.intent.best_fit.value,
        companies=len(ctx.companies),
        top_records=ctx.top_records,
    )
    return await strategy(ctx)
