"""
Direct financial listings.

GET /api/businesscentral/companies
GET /api/businesscentral/companies/{company_id}/customers?top={int}
GET /api/businesscentral/companies/{company_id}/items?top={int}
GET /api/businesscentral/companies/{company_id}/salesInvoices?top={int}

Authorization and provisioning failures are returned as 403 / 404 with
remediation hints by the application error handler.
"""
from fastapi import APIRouter, Depends, Query

from bizquery.clients.financials import FinancialsClient
from bizquery.core.logging import get_logger
from bizquery.dependencies import get_financials_client

logger = get_logger(__name__)

router = APIRouter()


@router.get("/companies")
async def list_companies(financials: FinancialsClient = Depends(get_financials_client)):
    companies = await financials.list_companies()
    logger.info("companies_listed", count=len(companies))
    return {"companies": companies}


@router.get("/companies/{company_id}/customers")
async def list_customers(
    company_id: str,
    top: int = Query(25, ge=1, le=100, description="Number of records to return"),
    financials: FinancialsClient = Depends(get_financials_client),
):
    customers = await financials.list_customers(company_id, top=top)
    return {"customers": customers}


@router.get("/companies/{company_id}/items")
async def list_items(
    company_id: str,
    top: int = Query(25, ge=1, le=100, description="Number of records to return"),
    financials: FinancialsClient = Depends(get_financials_client),
):
    items = await financials.list_items(company_id, top=top)
    return {"items": items}


@router.get("/companies/{company_id}/salesInvoices")
async def list_sales_invoices(
    company_id: str,
    top: int = Query(25, ge=1, le=100, description="Number of records to return"),
    financials: FinancialsClient = Depends(get_financials_client),
):
    """Newest invoices first."""
    invoices = await financials.list_sales_invoices(company_id, top=top)
    return {"salesInvoices": invoices}
