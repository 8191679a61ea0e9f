"""
Grounding prompt and response summary.

Both are built from the same request data but serve different readers:
the prompt goes to the language model and is bounded so a large tenant
cannot blow up its size; the summary goes back to the HTTP caller and only
carries counts, never raw records.
"""
import json
from typing import Any, Dict, List, Optional, Sequence

from bizquery.services.ai.schema import DirectoryUser, InboxSummary, QueryIntent

MAX_PROMPT_USERS = 10
MAX_PROMPT_MESSAGES = 5
MAX_PREVIEW_CHARS = 200
MAX_LIST_ITEMS = 10
MAX_PICTURE_CHARS = 2000

PICTURE_KEYS = ("itemPictures", "customerPictures")


def _truncate(text: Optional[str], limit: int) -> str:
    text = (text or "").replace("\r", " ").replace("\n", " ").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def bound_payload(value: Any) -> Any:
    """
    Copy of a financial payload sized for a prompt.

    Every list is cut to MAX_LIST_ITEMS (company lists and record lists
    alike) and base64 picture content is cut to MAX_PICTURE_CHARS with
    "truncated": true set next to it. The input is not modified.
    """
    if isinstance(value, list):
        return [bound_payload(item) for item in value[:MAX_LIST_ITEMS]]
    if isinstance(value, dict):
        bounded: Dict[str, Any] = {}
        for key, item in value.items():
            if key == "base64" and isinstance(item, str) and len(item) > MAX_PICTURE_CHARS:
                bounded[key] = item[:MAX_PICTURE_CHARS]
                bounded["truncated"] = True
            else:
                bounded[key] = bound_payload(item)
        return bounded
    return value


def _sender(message: Dict[str, Any]) -> str:
    address = (message.get("from") or {}).get("emailAddress") or {}
    name = address.get("name") or ""
    mail = address.get("address") or ""
    if name and mail:
        return f"{name} <{mail}>"
    return name or mail or "unknown sender"


def _format_message(message: Dict[str, Any]) -> str:
    subject = message.get("subject") or "(no subject)"
    received = message.get("receivedDateTime") or "unknown date"
    preview = _truncate(message.get("bodyPreview"), MAX_PREVIEW_CHARS)
    return f"- [{received}] {subject} | from: {_sender(message)} | {preview}"


def _directory_section(
    users: Sequence[DirectoryUser],
    inboxes: Sequence[InboxSummary],
    directory_error: Optional[str],
) -> List[str]:
    lines: List[str] = []
    if directory_error:
        lines.append(f"Directory data unavailable: {directory_error}")
        lines.append("")

    if not users:
        return lines

    inbox_by_user = {inbox.user_id: inbox for inbox in inboxes}
    lines.append(f"Directory users ({len(users)} total, showing up to {MAX_PROMPT_USERS}):")
    for user in users[:MAX_PROMPT_USERS]:
        inbox = inbox_by_user.get(user.id)
        count = f", {len(inbox.email_inbox)} recent emails" if inbox is not None else ""
        lines.append(f"- {user.display_name or user.id} <{user.mail or 'no mail'}>{count}")
    lines.append("")

    shown = [inbox for inbox in inboxes if inbox.mail][:MAX_PROMPT_USERS]
    if shown:
        lines.append("Recent emails:")
        for inbox in shown:
            lines.append(f"## {inbox.display_name or inbox.user_id} <{inbox.mail}>")
            if not inbox.email_inbox:
                lines.append("- (no messages)")
            for message in inbox.email_inbox[:MAX_PROMPT_MESSAGES]:
                lines.append(_format_message(message))
        lines.append("")
    return lines


def build_grounding_prompt(
    query: str,
    intent: QueryIntent,
    users: Sequence[DirectoryUser],
    inboxes: Sequence[InboxSummary],
    financial_payload: Dict[str, Any],
    directory_error: Optional[str] = None,
) -> str:
    """Assemble the answer prompt from the query, the intent and fetched data."""
    lines = [
        "You answer questions about a company's people, mailboxes and ERP data.",
        f'User query: "{query}"',
        f"Detected intent: {json.dumps(intent.to_payload())}",
        "",
    ]
    lines.extend(_directory_section(users, inboxes, directory_error))

    lines.append("Financial data (JSON):")
    lines.append(json.dumps(bound_payload(financial_payload), indent=2, default=str))
    lines.append("")
    lines.append(
        "Answer the user's query using only the data above. "
        "If the data does not contain the answer, say so plainly. "
        "Mention which company each figure comes from."
    )
    return "\n".join(lines)


def _entry_stats(entries: List[Any]) -> Dict[str, int]:
    errors = 0
    records = 0
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        if "error" in entry:
            errors += 1
            continue
        for value in entry.values():
            if isinstance(value, list):
                records += len(value)
            elif isinstance(value, dict):
                records += 1
    return {"companies": len(entries), "errors": errors, "records": records}


def summarize_financials(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Counts per payload key: companies, failed companies, records."""
    entries: Dict[str, Dict[str, int]] = {}
    for key, value in payload.items():
        if key == "companies" and isinstance(value, list):
            entries[key] = {"companies": len(value), "errors": 0, "records": len(value)}
        elif isinstance(value, list) and key not in PICTURE_KEYS:
            entries[key] = _entry_stats(value)

    summary: Dict[str, Any] = {
        "keys": sorted(payload.keys()),
        "entries": entries,
        "hasPicture": any(payload.get(key) for key in PICTURE_KEYS),
    }
    if isinstance(payload.get("error"), str):
        summary["error"] = payload["error"]
    return summary


def build_summary(
    intent: QueryIntent,
    users: Sequence[DirectoryUser],
    inboxes: Sequence[InboxSummary],
    financial_payload: Dict[str, Any],
    directory_error: Optional[str] = None,
) -> Dict[str, Any]:
    summary: Dict[str, Any] = {
        "intent": intent.to_payload(),
        "users": len(users),
        "usersShown": min(len(users), MAX_PROMPT_USERS),
        "usersWithEmails": sum(1 for inbox in inboxes if inbox.email_inbox),
    }
    if directory_error:
        summary["directoryError"] = directory_error
    summary["financials"] = summarize_financials(financial_payload)
    return summary
