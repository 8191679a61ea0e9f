"""
Directory (Microsoft Graph style) client: users, mailboxes and search.
"""
from typing import Any, Dict, List, Optional, Sequence

from bizquery.clients.base import UpstreamClient
from bizquery.core.errors import DIRECTORY_PERMISSIONS_HINT

USER_FIELDS = ("id", "displayName", "mail")
MESSAGE_FIELDS = ("id", "subject", "from", "receivedDateTime", "bodyPreview")
SEARCH_ENTITY_TYPES = ("message", "event", "driveItem")


class DirectoryClient(UpstreamClient):
    """Read-only accessor bound to one directory token."""

    service = "directory"
    auth_hint = DIRECTORY_PERMISSIONS_HINT

    async def list_users(self, fields: Sequence[str] = USER_FIELDS) -> List[Dict[str, Any]]:
        """GET /users?$select=..."""
        return await self.get_collection("/users", params={"$select": ",".join(fields)})

    async def list_messages(
        self,
        user_id: str,
        top: int = 10,
        fields: Sequence[str] = MESSAGE_FIELDS,
    ) -> List[Dict[str, Any]]:
        """Most recent messages of one mailbox, newest first."""
        params = {
            "$top": str(top),
            "$select": ",".join(fields),
            "$orderby": "receivedDateTime desc",
        }
        messages = await self.get_collection(f"/users/{user_id}/messages", params=params)
        return messages[:top]

    async def search(
        self,
        query: str,
        entity_types: Sequence[str] = SEARCH_ENTITY_TYPES,
        size: int = 10,
    ) -> List[Dict[str, Any]]:
        """Free-text search; returns the hitsContainers of the first response."""
        body = {
            "requests": [
                {
                    "entityTypes": list(entity_types),
                    "query": {"queryString": query},
                    "from": 0,
                    "size": size,
                }
            ]
        }
        response = await self._send("POST", "/search/query", json_body=body)
        values: Optional[list] = response.json().get("value")
        if not values:
            return []
        return values[0].get("hitsContainers") or []
