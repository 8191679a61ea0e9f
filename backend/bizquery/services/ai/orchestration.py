"""
Query orchestration.

Responsibilities:
- Validate the query and acquire the request's directory token
- Resolve intent through the classifier (never fails, may degrade)
- Fetch directory data when the intent asks for people or mailboxes
- Fetch the financial slice selected by the intent's strategy
- Assemble a bounded grounding prompt and ask the model for the answer

Everything here is request scoped: tokens, clients, intent and records are
created per call to handle() and dropped afterwards.
"""
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from bizquery.clients.directory import DirectoryClient, USER_FIELDS
from bizquery.clients.financials import FinancialsClient
from bizquery.core.config import BC_AUDIENCE, GRAPH_AUDIENCE
from bizquery.core.concurrency import gather_bounded
from bizquery.core.errors import ClientInputError
from bizquery.core.logging import get_logger
from bizquery.core.metrics import record_entity_fetch_failure, record_orchestration
from bizquery.core.tracing import traced
from bizquery.services.ai.agents.intent import IntentClassificationAgent
from bizquery.services.ai.context import build_grounding_prompt, build_summary
from bizquery.services.ai.schema import DirectoryUser, InboxSummary, QueryAnswer, QueryIntent
from bizquery.services.ai.strategies import StrategyContext, run_strategy

logger = get_logger(__name__)

# Inbox depth: a few messages when the query names people, more otherwise
NAMED_USERS_INBOX_TOP = 5
ALL_USERS_INBOX_TOP = 15


def filter_users_by_names(users: Sequence[DirectoryUser], names: Sequence[str]) -> List[DirectoryUser]:
    """
    Users whose display name or mail contains any of names (case-insensitive).

    Falls back to the full list when names is empty or nothing matches, so
    the result is never empty unless users is.
    """
    wanted = [name.strip().lower() for name in names if name and name.strip()]
    if not wanted:
        return list(users)

    matched = [
        user
        for user in users
        if any(
            name in (user.display_name or "").lower() or name in (user.mail or "").lower()
            for name in wanted
        )
    ]
    return matched or list(users)


def _to_users(records: List[Dict[str, Any]]) -> List[DirectoryUser]:
    return [
        DirectoryUser(
            id=record["id"],
            display_name=record.get("displayName") or "",
            mail=record.get("mail"),
        )
        for record in records
        if record.get("id")
    ]


class QueryOrchestrator:
    """
    Turns one free-text query into an answer grounded in upstream data.

    Collaborators are injected so the HTTP layer builds them per request and
    tests can substitute fakes:
    - directory_credential / financial_credential: get_token(audience)
    - completion: complete(prompt, agent, max_tokens) -> str
    - directory_factory(token) -> DirectoryClient
    - financials_factory(token) -> FinancialsClient
    """

    def __init__(
        self,
        directory_credential,
        financial_credential,
        completion,
        directory_factory: Callable[[str], DirectoryClient],
        financials_factory: Callable[[str], FinancialsClient],
        graph_audience: str = GRAPH_AUDIENCE,
        bc_audience: str = BC_AUDIENCE,
        inbox_concurrency: int = 8,
        company_concurrency: int = 4,
        classifier: Optional[IntentClassificationAgent] = None,
    ):
        self._directory_credential = directory_credential
        self._financial_credential = financial_credential
        self._completion = completion
        self._directory_factory = directory_factory
        self._financials_factory = financials_factory
        self.graph_audience = graph_audience
        self.bc_audience = bc_audience
        self.inbox_concurrency = inbox_concurrency
        self.company_concurrency = company_concurrency
        self._classifier = classifier or IntentClassificationAgent(completion)

    async def handle(self, query: Optional[str]) -> QueryAnswer:
        """
        Answer a query.

        Raises:
            ClientInputError: query missing or blank (no upstream call made)
            UpstreamAuthError / ConfigurationError: directory token unavailable
            CompletionServiceError: the answer could not be generated
        """
        query = (query or "").strip()
        if not query:
            raise ClientInputError("Missing query parameter")

        start = time.time()

        with traced("orchestrator.handle", **{"query.length": len(query)}) as span:
            with traced("orchestrator.directory_token", audience=self.graph_audience):
                token = await self._directory_credential.get_token(self.graph_audience)
            directory = self._directory_factory(token.token)

            with traced("orchestrator.classify"):
                intent = await self._classifier.classify(query)
            span.set_attribute("intent.best_fit", intent.best_fit.value)

            with traced(
                "orchestrator.directory",
                **{"intent.needs_users": intent.needs_users, "intent.needs_inbox": intent.needs_inbox},
            ):
                users, inboxes, directory_error = await self._fetch_directory(directory, intent)

            with traced("orchestrator.financials", **{"intent.company_hint": intent.company_hint}):
                financial_payload = await self._fetch_financials(intent)

            prompt = build_grounding_prompt(
                query, intent, users, inboxes, financial_payload, directory_error=directory_error
            )
            summary = build_summary(
                intent, users, inboxes, financial_payload, directory_error=directory_error
            )

            with traced("orchestrator.answer", **{"prompt.length": len(prompt)}):
                answer = await self._completion.complete(prompt, agent="answer")

        duration = time.time() - start
        record_orchestration(intent.best_fit.value, duration)
        logger.info(
            "query_answered",
            best_fit=intent.best_fit.value,
            users=len(users),
            financial_keys=sorted(financial_payload.keys()),
            prompt_len=len(prompt),
            duration_ms=round(duration * 1000, 2),
        )
        return QueryAnswer(answer=answer, summary=summary)

    async def _fetch_directory(
        self,
        directory: DirectoryClient,
        intent: QueryIntent,
    ) -> Tuple[List[DirectoryUser], List[InboxSummary], Optional[str]]:
        if not (intent.needs_users or intent.needs_inbox):
            return [], [], None

        try:
            records = await directory.list_users(USER_FIELDS)
        except Exception as exc:
            record_entity_fetch_failure("users")
            logger.warning("users_fetch_failed", error=str(exc), error_type=type(exc).__name__)
            return [], [], str(exc)

        users = filter_users_by_names(_to_users(records), intent.specific_user_names)
        logger.info(
            "users_fetched",
            total=len(records),
            matched=len(users),
            names=list(intent.specific_user_names),
        )

        if not intent.needs_inbox:
            return users, [], None

        top = NAMED_USERS_INBOX_TOP if intent.specific_user_names else ALL_USERS_INBOX_TOP

        async def _inbox(user: DirectoryUser) -> InboxSummary:
            summary = InboxSummary(user_id=user.id, display_name=user.display_name, mail=user.mail)
            try:
                summary.email_inbox = await directory.list_messages(user.id, top=top)
            except Exception as exc:
                record_entity_fetch_failure("inbox")
                logger.warning(
                    "inbox_fetch_failed",
                    user_id=user.id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
            return summary

        inboxes = await gather_bounded(_inbox, users, self.inbox_concurrency)
        logger.info(
            "inboxes_fetched",
            users=len(inboxes),
            with_messages=sum(1 for inbox in inboxes if inbox.email_inbox),
        )
        return users, inboxes, None

    async def _fetch_financials(self, intent: QueryIntent) -> Dict[str, Any]:
        try:
            token = await self._financial_credential.get_token(self.bc_audience)
            financials = self._financials_factory(token.token)
            companies = await financials.list_companies()
        except Exception as exc:
            record_entity_fetch_failure("companies")
            logger.warning("companies_fetch_failed", error=str(exc), error_type=type(exc).__name__)
            return {"error": str(exc)}

        companies = companies[: intent.limits.top_companies]
        if not companies:
            return {"error": "No companies found"}

        ctx = StrategyContext(
            financials=financials,
            companies=companies,
            intent=intent,
            concurrency=self.company_concurrency,
        )
        return await run_strategy(ctx)
