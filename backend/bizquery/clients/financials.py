"""
Financial (Business Central style) client.

Base URL: {BC_API_ROOT}/{tenantId}/{environment}/api/v2.0
Entity sets are scoped under a company: /companies({companyId})/{entitySet}.

Query shaping follows OData: $select, $filter, $top, $orderby, $expand.
The *_min helpers select a compact field set per record type so payloads
handed to the LLM stay small.
"""
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pydantic import BaseModel

from bizquery.clients.base import UpstreamClient
from bizquery.core.errors import FINANCIAL_NOT_FOUND_HINTS, FINANCIAL_PERMISSIONS_HINT

ITEM_FIELDS = "id,number,displayName,baseUnitOfMeasureId,itemCategoryId,unitPrice,inventory"
CUSTOMER_FIELDS = "id,number,displayName,type,phoneNumber,email,website,currencyCode,blocked,balance"
SALES_INVOICE_FIELDS = (
    "id,number,customerId,customerName,invoiceDate,dueDate,status,"
    "totalAmountIncludingTax,currencyCode"
)
PURCHASE_INVOICE_FIELDS = (
    "id,number,vendorId,vendorName,invoiceDate,dueDate,status,"
    "totalAmountIncludingTax,currencyCode"
)
ITEM_CATEGORY_FIELDS = "id,code,displayName,parentCategoryId"
UNIT_OF_MEASURE_FIELDS = "id,code,displayName,internationalStandardCode"
ITEM_LEDGER_FIELDS = (
    "id,postingDate,entryType,documentNumber,itemId,description,quantity,"
    "unitOfMeasureCode,locationCode"
)
CUSTOMER_LEDGER_FIELDS = (
    "id,postingDate,documentNumber,documentType,customerId,customerNumber,"
    "customerName,amount,remainingAmount,currencyCode,open"
)

PICTURE_SIZES = ("small", "medium", "large")


class Picture(BaseModel):
    """Binary picture content as returned by the financial API."""

    content_type: Optional[str] = None
    data: bytes = b""


def build_odata_params(
    select: Optional[str] = None,
    filter: Optional[str] = None,
    top: Optional[int] = None,
    orderby: Optional[str] = None,
    expand: Optional[str] = None,
) -> Dict[str, str]:
    """
    Build OData query options. Values are passed without the leading "$".

    >>> build_odata_params(select="id,number", top=10)
    {'$select': 'id,number', '$top': '10'}
    """
    params: Dict[str, str] = {}
    if select:
        params["$select"] = str(select)
    if filter:
        params["$filter"] = str(filter)
    if top is not None:
        params["$top"] = str(top)
    if orderby:
        params["$orderby"] = str(orderby)
    if expand:
        params["$expand"] = str(expand)
    return params


def _key(value: str) -> str:
    return quote(str(value), safe="")


class FinancialsClient(UpstreamClient):
    """Read-only accessor bound to one financial-audience token."""

    service = "financial"
    auth_hint = FINANCIAL_PERMISSIONS_HINT
    not_found_hints = FINANCIAL_NOT_FOUND_HINTS

    # -- generic accessors --------------------------------------------------

    async def list_companies(self) -> List[Dict[str, Any]]:
        return await self.get_collection("/companies")

    async def list_entities(
        self,
        company_id: str,
        entity_set: str,
        select: Optional[str] = None,
        filter: Optional[str] = None,
        top: Optional[int] = None,
        orderby: Optional[str] = None,
        expand: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """GET /companies({company_id})/{entity_set} with OData shaping."""
        params = build_odata_params(select=select, filter=filter, top=top, orderby=orderby, expand=expand)
        records = await self.get_collection(
            f"/companies({_key(company_id)})/{entity_set}",
            params=params or None,
        )
        # The service may ignore $top on some entity sets
        if top is not None:
            records = records[:top]
        return records

    async def get_entity(self, company_id: str, entity_set: str, entity_id: str) -> Dict[str, Any]:
        """GET /companies({company_id})/{entity_set}({entity_id})"""
        record = await self.get_json(f"/companies({_key(company_id)})/{entity_set}({_key(entity_id)})")
        record.pop("@odata.context", None)
        return record

    async def get_picture(
        self,
        company_id: str,
        entity_set: str,
        entity_id: str,
        size: Optional[str] = None,
    ) -> Picture:
        """
        Binary picture of an item or customer.

        Items accept a size (small | medium | large): .../items(id)/picture(size).
        Customers have a single picture resource: .../customers(id)/picture.
        """
        path = f"/companies({_key(company_id)})/{entity_set}({_key(entity_id)})/picture"
        if size:
            if size not in PICTURE_SIZES:
                raise ValueError(f"size must be one of {PICTURE_SIZES}")
            path += f"({_key(size)})"
        response = await self._send("GET", path, accept="*/*")
        return Picture(
            content_type=response.headers.get("content-type"),
            data=response.content,
        )

    # -- typed wrappers -----------------------------------------------------

    async def list_items(self, company_id: str, top: int = 25) -> List[Dict[str, Any]]:
        return await self.list_entities(company_id, "items", select=ITEM_FIELDS, top=top)

    async def get_item(self, company_id: str, item_id: str) -> Dict[str, Any]:
        return await self.get_entity(company_id, "items", item_id)

    async def list_customers(self, company_id: str, top: int = 25) -> List[Dict[str, Any]]:
        return await self.list_entities(company_id, "customers", select=CUSTOMER_FIELDS, top=top)

    async def get_customer(self, company_id: str, customer_id: str) -> Dict[str, Any]:
        return await self.get_entity(company_id, "customers", customer_id)

    async def list_sales_invoices(self, company_id: str, top: int = 25) -> List[Dict[str, Any]]:
        return await self.list_entities(
            company_id,
            "salesInvoices",
            select=SALES_INVOICE_FIELDS,
            top=top,
            orderby="invoiceDate desc",
        )

    async def list_purchase_invoices(self, company_id: str, top: int = 25) -> List[Dict[str, Any]]:
        return await self.list_entities(
            company_id,
            "purchaseInvoices",
            select=PURCHASE_INVOICE_FIELDS,
            top=top,
            orderby="invoiceDate desc",
        )

    async def list_item_categories(self, company_id: str, top: int = 100) -> List[Dict[str, Any]]:
        return await self.list_entities(company_id, "itemCategories", select=ITEM_CATEGORY_FIELDS, top=top)

    async def list_units_of_measure(self, company_id: str, top: int = 100) -> List[Dict[str, Any]]:
        return await self.list_entities(company_id, "unitsOfMeasure", select=UNIT_OF_MEASURE_FIELDS, top=top)

    async def list_item_ledger_entries(
        self,
        company_id: str,
        top: int = 50,
        item_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return await self.list_entities(
            company_id,
            "itemLedgerEntries",
            select=ITEM_LEDGER_FIELDS,
            filter=f"itemId eq {item_id}" if item_id else None,
            top=top,
            orderby="postingDate desc",
        )

    async def list_customer_ledger_entries(
        self,
        company_id: str,
        top: int = 50,
        customer_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return await self.list_entities(
            company_id,
            "customerLedgerEntries",
            select=CUSTOMER_LEDGER_FIELDS,
            filter=f"customerId eq {customer_id}" if customer_id else None,
            top=top,
            orderby="postingDate desc",
        )

    async def get_item_picture(self, company_id: str, item_id: str, size: str = "small") -> Picture:
        return await self.get_picture(company_id, "items", item_id, size=size)

    async def get_customer_picture(self, company_id: str, customer_id: str) -> Picture:
        return await self.get_picture(company_id, "customers", customer_id)
