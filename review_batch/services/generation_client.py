# ==== TEXT GENERATION CLIENT ==== #

"""
Client for the text-generation service used as a batch task.

Each ``generate`` call performs exactly one request to the Messages API and
either returns the cleaned text or raises ``GenerationError``. Retries,
timeouts and circuit breaking are the batch executor's job, not the client's.
"""

import re
import time
from typing import Any, Dict, Iterable, Optional

import httpx

from review_batch.executor.config import BatchProcessingConfig
from review_batch.executor.dispatcher import BatchExecutor
from review_batch.executor.models import BatchResult, ProgressCallback, TaskFunction
from review_batch.observability.logging import ContextualLogger
from review_batch.observability.metrics import (
    ai_failures_total,
    ai_requests_total,
    ai_tokens_total,
)
from review_batch.observability.tracing import get_tracer
from review_batch.settings import Settings, get_settings


# ==== MODULE INITIALIZATION ==== #

tracer = get_tracer(__name__)
logger = ContextualLogger(__name__)

# Trailing commentary the model sometimes appends after the text itself
_TRAILER_PATTERNS = [
    re.compile(r"\n\nNote:[\s\S]*$", re.IGNORECASE),
    re.compile(r"\n注意:[\s\S]*$"),
    re.compile(r"\n備考:[\s\S]*$"),
    re.compile(r"※補足[\s\S]*$"),
    re.compile(r"（文字数：[\s\S]*$"),
]
_WRAPPING_QUOTES = re.compile(r'^["「]|["」]$')


class GenerationError(Exception):
    """Raised when the generation service fails or answers unexpectedly."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def clean_generated_text(text: str) -> str:
    """Strip trailing notes and wrapping quotes from generated text."""
    cleaned = text.strip()
    for pattern in _TRAILER_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = _WRAPPING_QUOTES.sub("", cleaned)
    return cleaned.strip()


# ==== GENERATION CLIENT CLASS ==== #


class GenerationClient:
    """
    Async client for a Messages-API compatible generation provider.

    Owns its ``httpx.AsyncClient`` unless one is injected.
    """

    provider = "anthropic"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        *,
        api_version: str = "2023-06-01",
        max_tokens: int = 1000,
        temperature: float = 0.9,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("api_key is required")

        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.api_version = api_version
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.model_label = re.sub(r'[^a-zA-Z0-9_]', '_', model)

        self._owns_client = http_client is None
        # Per-attempt timeouts are enforced by the executor
        self._client = http_client or httpx.AsyncClient(timeout=None)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "GenerationClient":
        settings = settings or get_settings()
        return cls(
            base_url=settings.AI_PROVIDER_BASE_URL,
            api_key=settings.AI_API_KEY,
            model=settings.AI_MODEL,
            api_version=settings.AI_API_VERSION,
            max_tokens=settings.AI_MAX_TOKENS,
            temperature=settings.AI_TEMPERATURE,
            http_client=http_client,
        )

    async def __aenter__(self) -> "GenerationClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def generate(self, prompt: str) -> str:
        """
        Generate one text for ``prompt``.

        Args:
            prompt (str): Fully built prompt

        Returns:
            str: Cleaned generated text

        Raises:
            GenerationError: Non-2xx response, transport error or unexpected payload
        """
        with tracer.start_as_current_span("generation_request") as span:
            span.set_attribute("provider", self.provider)
            span.set_attribute("model", self.model)
            start_time = time.monotonic()

            try:
                data = await self._make_request(prompt)
                text = self._extract_text(data)
            except GenerationError as e:
                ai_failures_total.labels(
                    provider=self.provider,
                    error_type=type(e.__cause__ or e).__name__,
                ).inc()
                span.set_attribute("error", str(e))
                raise

            ai_requests_total.labels(provider=self.provider, model=self.model_label).inc()
            self._track_usage(data.get("usage") or {})
            span.set_attribute(
                "processing_time_ms", int((time.monotonic() - start_time) * 1000)
            )
            return clean_generated_text(text)

    async def _make_request(self, prompt: str) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
        }

        try:
            response = await self._client.post(
                f"{self.base_url}/messages", json=payload, headers=headers
            )
        except httpx.HTTPError as e:
            raise GenerationError(f"Generation request failed: {e}") from e

        if response.is_error:
            raise GenerationError(
                f"Generation API error: {response.status_code} {response.text}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise GenerationError("Generation API returned invalid JSON") from e

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        content = data.get("content") or []
        if content and isinstance(content[0], dict) and content[0].get("text"):
            return content[0]["text"]
        raise GenerationError("Unexpected generation response format")

    def _track_usage(self, usage: Dict[str, Any]) -> None:
        for token_type in ("input", "output"):
            tokens = usage.get(f"{token_type}_tokens")
            if tokens:
                ai_tokens_total.labels(
                    provider=self.provider, model=self.model_label, type=token_type
                ).inc(tokens)


# ==== BATCH GENERATION ==== #


async def generate_texts(
    prompts: Iterable[str],
    *,
    client: GenerationClient,
    executor: Optional[BatchExecutor] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> BatchResult:
    """
    Generate one text per prompt through the batch executor.

    Args:
        prompts: Already built prompts
        client: Generation client performing the calls
        executor: Executor to reuse; one configured from settings otherwise
        on_progress: Optional ``(completed, total)`` callback

    Returns:
        BatchResult: Generated texts and failed prompts
    """
    async def generate_one(prompt: str, index: int) -> str:
        return await client.generate(prompt)

    return await _run_prompts(prompts, generate_one, executor, on_progress)


async def generate_records(
    prompts: Iterable[str],
    *,
    client: GenerationClient,
    executor: Optional[BatchExecutor] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> BatchResult:
    """Like ``generate_texts`` but each success is ``{"index", "prompt", "text"}``."""

    async def generate_one(prompt: str, index: int) -> Dict[str, Any]:
        return {"index": index, "prompt": prompt, "text": await client.generate(prompt)}

    return await _run_prompts(prompts, generate_one, executor, on_progress)


async def _run_prompts(
    prompts: Iterable[str],
    task: TaskFunction,
    executor: Optional[BatchExecutor],
    on_progress: Optional[ProgressCallback],
) -> BatchResult:
    executor = executor or BatchExecutor(BatchProcessingConfig.from_settings(get_settings()))

    def log_progress(completed: int, total: int) -> None:
        logger.info(
            "Generation progress",
            completed=completed,
            total=total,
            percent=round(completed / total * 100),
        )

    return await executor.run(list(prompts), task, on_progress or log_progress)
