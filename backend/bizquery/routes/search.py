"""
Directory endpoints.

GET /api/search/users?q={optional}
GET /api/search/emailInbox/{user_id}
GET /api/search/business-central/companies
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from bizquery.clients.directory import DirectoryClient, USER_FIELDS
from bizquery.clients.financials import FinancialsClient
from bizquery.core.errors import ClientInputError
from bizquery.core.logging import get_logger
from bizquery.dependencies import get_directory_client, get_financials_client

logger = get_logger(__name__)

router = APIRouter()

INBOX_TOP = 10


@router.get("/users")
async def search_users(
    q: Optional[str] = Query(None, description="Optional free-text search"),
    directory: DirectoryClient = Depends(get_directory_client),
):
    """
    List directory users, or run a directory search when q is given.

    Without q: {"users": [...]}; with q: {"results": [hitsContainers]}.
    """
    query = (q or "").strip()
    if not query:
        users = await directory.list_users(USER_FIELDS)
        logger.info("users_listed", count=len(users))
        return {"users": users}

    results = await directory.search(query)
    logger.info("directory_search_completed", query=query, containers=len(results))
    return {"results": results}


@router.get("/emailInbox")
@router.get("/emailInbox/")
async def email_inbox_missing_user():
    raise ClientInputError("User ID is required")


def required_user_id(user_id: str) -> str:
    """Path user id, rejected when blank before any token is requested."""
    user_id = user_id.strip()
    if not user_id:
        raise ClientInputError("User ID is required")
    return user_id


@router.get("/emailInbox/{user_id}")
async def email_inbox(
    user_id: str = Depends(required_user_id),
    directory: DirectoryClient = Depends(get_directory_client),
):
    """Most recent messages of one user's mailbox."""
    messages = await directory.list_messages(user_id, top=INBOX_TOP)
    return {"emailInbox": messages}


@router.get("/business-central/companies")
async def business_central_companies(
    financials: FinancialsClient = Depends(get_financials_client),
):
    """Companies visible to the financial service credentials."""
    companies = await financials.list_companies()
    return {"companies": companies}
