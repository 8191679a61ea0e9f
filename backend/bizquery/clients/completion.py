"""
Text completion client.

Prompt in, text out, against an OpenAI-compatible /chat/completions API over
plain httpx (no vendor SDK).

Environment configuration (see core.config):
- LLM_API_BASE: Base URL for API (default: https://api.openai.com/v1)
- LLM_API_KEY / OPENAI_API_KEY: API key / bearer token
- LLM_MODEL: Model name (default: gpt-4o-mini)
- LLM_TIMEOUT_SECONDS: Request timeout in seconds (default: 60)
"""
import time
from typing import Any, Dict, Optional

import httpx

from bizquery.core.errors import CompletionServiceError
from bizquery.core.logging import get_logger
from bizquery.core.metrics import (
    record_llm_error,
    record_llm_request,
    record_llm_tokens,
)

logger = get_logger(__name__)


class LLMClient:
    """Async HTTP client for text completion."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_base: str,
        api_key: Optional[str],
        model: str,
        timeout_seconds: float = 60.0,
        max_tokens: int = 1024,
    ):
        self._http = http
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens

    async def complete(
        self,
        prompt: str,
        agent: str = "answer",
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Send a single user prompt and return the generated text.

        Args:
            prompt: Full prompt text
            agent: Logical caller name for metrics ("intent", "answer")
            max_tokens: Completion token cap (defaults to the client setting)
            temperature: Sampling temperature; provider default when None

        Raises:
            CompletionServiceError: missing key, transport failure, non-2xx
                response, or a response without text
        """
        if not self.api_key:
            record_llm_error(agent, "missing_api_key")
            raise CompletionServiceError("Failed to get response from the language model: API key not configured")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens or self.max_tokens,
        }
        if temperature is not None:
            payload["temperature"] = temperature

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        logger.debug("llm_request_started", agent=agent, prompt_len=len(prompt))
        start = time.time()
        try:
            response = await self._http.post(
                f"{self.api_base}/chat/completions",
                headers=headers,
                json=payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            record_llm_error(agent, "timeout")
            logger.warning("llm_timeout", agent=agent, error=str(exc), error_type=type(exc).__name__)
            raise CompletionServiceError("Failed to get response from the language model") from exc
        except httpx.HTTPError as exc:
            record_llm_error(agent, "http_error")
            logger.warning("llm_http_error", agent=agent, error=str(exc), error_type=type(exc).__name__)
            raise CompletionServiceError("Failed to get response from the language model") from exc
        finally:
            record_llm_request(agent, self.model, time.time() - start)

        try:
            data = response.json()
        except ValueError as exc:
            record_llm_error(agent, "malformed_response")
            logger.warning("llm_malformed_response", agent=agent, raw=response.text[:500])
            raise CompletionServiceError("Language model returned a malformed response") from exc
        if not isinstance(data, dict):
            record_llm_error(agent, "malformed_response")
            logger.warning("llm_malformed_response", agent=agent, raw=data)
            raise CompletionServiceError("Language model returned a malformed response")

        usage = data.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        record_llm_tokens(
            agent=agent,
            model=self.model,
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            record_llm_error(agent, "malformed_response")
            logger.warning("llm_malformed_response", agent=agent, raw=data)
            raise CompletionServiceError("Language model returned a malformed response") from exc

        text = (content or "").strip()
        if not text:
            record_llm_error(agent, "empty_response")
            raise CompletionServiceError("Language model returned an empty response")

        logger.info("llm_request_completed", agent=agent, response_len=len(text))
        return text
