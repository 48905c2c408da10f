"""Classification service client over OpenAI-compatible and Ollama chat APIs."""

import asyncio
from typing import Any, Dict, Optional, Protocol

import httpx

from notesorter.models.config import LLMConfig
from notesorter.services.exceptions import MalformedResponse
from notesorter.utils.logging import get_logger


logger = get_logger(__name__)


ROUTING_SYSTEM_PROMPT = (
    "You are an intelligent content router for a personal knowledge base. "
    "You answer with JSON only."
)


class ClassificationService(Protocol):
    """Anything that turns a prompt into classifier text for a given model."""

    async def invoke(self, prompt: str, model: str) -> str:
        ...


def _extract_content_from_openai_response(data: Dict[str, Any]) -> Optional[str]:
    """
    Extract message content from an OpenAI-style chat completion.

    OpenAI returns:
    {
        "choices": [{
            "message": {"role": "assistant", "content": "..."},
            "finish_reason": "stop"
        }]
    }
    """
    try:
        return data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None


def _extract_content_from_ollama_response(data: Dict[str, Any]) -> Optional[str]:
    """
    Extract message content from an Ollama native /api/chat response.

    Ollama returns:
    {
        "model": "...",
        "message": {"role": "assistant", "content": "..."},
        "done": true
    }
    """
    try:
        return data["message"]["content"]
    except (KeyError, TypeError):
        return None


class LLMClient:
    """
    HTTP client for the classification service.

    Supports OpenAI-compatible APIs (including Ollama) with automatic retry
    on transient connection errors. HTTP status errors are not retried here;
    the router decides whether to try a different model.
    """

    def __init__(self, config: LLMConfig):
        """
        Initialize LLM client.

        Args:
            config: LLM configuration (endpoint, API key, models)
        """
        self.config = config
        self.timeout = httpx.Timeout(
            connect=10.0,
            read=120.0,  # Routing responses arrive in one piece
            write=10.0,
            pool=10.0
        )
        self._is_ollama: bool | None = None  # Cached provider detection

    def _base_url(self) -> str:
        base_url = str(self.config.endpoint).rstrip("/")
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        return base_url

    async def _detect_ollama(self) -> bool:
        """
        Detect if the LLM endpoint is Ollama by probing /api/version.

        This detection is cached after the first call.

        Returns:
            True if Ollama detected, False otherwise
        """
        if self._is_ollama is not None:
            return self._is_ollama

        version_url = f"{self._base_url()}/api/version"
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(5.0)) as client:
                logger.debug("llm_provider_detection", version_url=version_url)
                response = await client.get(version_url)
                if response.status_code == 200:
                    logger.info("llm_provider_detected", provider="ollama", version_url=version_url)
                    self._is_ollama = True
                    return True
        except httpx.HTTPError as e:
            logger.debug(
                "llm_provider_detection_failed",
                error=str(e),
                assumed_provider="openai",
            )

        logger.info("llm_provider_detected", provider="openai")
        self._is_ollama = False
        return False

    async def invoke(self, prompt: str, model: str) -> str:
        """Run one routing request against ``model`` and return the raw text."""
        return await self.complete(prompt, system_prompt=ROUTING_SYSTEM_PROMPT, model=model)

    async def complete(
        self,
        prompt: str,
        system_prompt: str,
        model: Optional[str] = None,
        max_retries: int = 1,
        retry_delay: float = 2.0,
    ) -> str:
        """
        Send one chat completion request and return the assistant text.

        Args:
            prompt: User prompt
            system_prompt: System prompt
            model: Model name (defaults to the configured primary model)
            max_retries: Automatic retries on connection errors/timeouts (default: 1)
            retry_delay: Delay in seconds between retries (default: 2.0)

        Returns:
            The assistant message content

        Raises:
            httpx.HTTPError: On network or HTTP errors after retries exhausted
            MalformedResponse: If the response body has no message content
        """
        model = model or self.config.model
        # Trigger-started runs name their task after the document
        current_task = asyncio.current_task()
        task_name = current_task.get_name() if current_task else None
        request_id = task_name or "unknown"

        is_ollama = await self._detect_ollama()

        payload: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "stream": False,
            "temperature": self.config.temperature,
        }

        if is_ollama:
            url = self._base_url() + "/api/chat"
            if self.config.num_ctx:
                payload["options"] = {"num_ctx": self.config.num_ctx}
        else:
            url = str(self.config.endpoint).rstrip("/") + "/chat/completions"

        logger.info(
            "llm_request_started",
            request_id=request_id,
            model=model,
            endpoint=str(self.config.endpoint),
            provider="ollama" if is_ollama else "openai",
            prompt_length=len(prompt),
        )
        logger.debug("llm_request_payload", request_id=request_id, payload=payload)

        attempt = 0
        while True:
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    headers = {"Authorization": f"Bearer {self.config.api_key}"}
                    response = await client.post(url, json=payload, headers=headers)
                    response.raise_for_status()
                break

            except (httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout) as e:
                attempt += 1
                logger.warning(
                    "llm_request_retry",
                    request_id=request_id,
                    attempt=attempt,
                    max_retries=max_retries,
                    error=str(e),
                    retry_delay=retry_delay,
                )
                if attempt > max_retries:
                    logger.error(
                        "llm_request_failed",
                        request_id=request_id,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise
                await asyncio.sleep(retry_delay)

            except httpx.HTTPStatusError as e:
                # Don't retry on 4xx/5xx here (bad request, auth, overloaded model)
                logger.error(
                    "llm_http_error",
                    request_id=request_id,
                    status_code=e.response.status_code,
                    error=str(e),
                )
                raise

        try:
            data = response.json()
        except ValueError as e:
            logger.error("llm_response_not_json", request_id=request_id, error=str(e))
            raise MalformedResponse("LLM response body is not JSON", raw=response.text) from e

        if is_ollama:
            content = _extract_content_from_ollama_response(data)
        else:
            content = _extract_content_from_openai_response(data)

        if content is None:
            logger.error("llm_response_missing_content", request_id=request_id, response=data)
            raise MalformedResponse("LLM response has no message content", raw=str(data))

        logger.info(
            "llm_request_completed",
            request_id=request_id,
            model=model,
            response_length=len(content),
        )
        logger.debug("llm_response_raw", request_id=request_id, content=content)
        return content
