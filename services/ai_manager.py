"""
Central AI Manager service for handling interactions with Google Gemini.
"""

import asyncio
import json
from typing import Any, Optional, Type, TypeVar

from google import genai
from google.genai import types
from pydantic import BaseModel, ValidationError

from core.config import settings
from core.exceptions import AIServiceException
import structlog

T = TypeVar("T", bound=BaseModel)
logger = structlog.get_logger("ai_manager")


class AIRetryConfig:
    """Configuration for AI service retry logic."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        backoff_multiplier: float = 2.0,
        timeout_seconds: float = 120.0,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_multiplier = backoff_multiplier
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls) -> "AIRetryConfig":
        return cls(
            max_retries=settings.ai_max_retries,
            timeout_seconds=settings.ai_timeout_seconds,
        )


class AIManager:
    """
    Central manager for Gemini calls.

    This class handles:
    - Creating the Gemini client from the configured API key
    - Executing model calls with timeout and exponential backoff
    - Parsing structured (JSON schema) responses
    """

    def __init__(self, retry_config: Optional[AIRetryConfig] = None, api_key: Optional[str] = None):
        self.retry_config = retry_config or AIRetryConfig.from_settings()
        self._api_key = api_key if api_key is not None else settings.gemini_api_key
        self._gemini_client = None

    def _get_client(self) -> genai.Client:
        if self._gemini_client is None:
            if not self._api_key:
                raise AIServiceException(
                    detail="No Google Gemini API key configured", provider="Google"
                )
            self._gemini_client = genai.Client(api_key=self._api_key)
            logger.info("Gemini client initialized")
        return self._gemini_client

    async def _retry_with_backoff(self, func, *args, **kwargs):
        """
        Execute a coroutine function with exponential backoff retry logic.
        """
        last_exception = None

        for attempt in range(self.retry_config.max_retries + 1):
            try:
                return await asyncio.wait_for(
                    func(*args, **kwargs), timeout=self.retry_config.timeout_seconds
                )

            except asyncio.TimeoutError as e:
                last_exception = e
                logger.warning(
                    "AI request timeout",
                    attempt=attempt + 1,
                    timeout=self.retry_config.timeout_seconds,
                )

            except AIServiceException:
                raise

            except Exception as e:
                last_exception = e
                logger.warning("AI request failed", attempt=attempt + 1, error=str(e))

            # Don't retry on the last attempt
            if attempt < self.retry_config.max_retries:
                delay = min(
                    self.retry_config.base_delay
                    * (self.retry_config.backoff_multiplier**attempt),
                    self.retry_config.max_delay,
                )
                logger.info(
                    "Retrying AI request", delay_seconds=delay, attempt=attempt + 1
                )
                await asyncio.sleep(delay)

        # All retries exhausted
        logger.error("All AI request retries exhausted", error=str(last_exception))
        if isinstance(last_exception, asyncio.TimeoutError):
            raise AIServiceException(
                detail=f"AI request timeout after {self.retry_config.timeout_seconds} seconds",
                provider="Google",
            )
        raise AIServiceException(
            detail=f"AI request failed after {self.retry_config.max_retries} retries: {str(last_exception)}",
            provider="Google",
        )

    async def generate_content_with_gemini(
        self,
        prompt: str,
        model: Optional[str] = None,
        response_schema: Optional[Type[T]] = None,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Any:
        """
        Generate content using Google Gemini with retry logic.

        Returns the parsed ``response_schema`` instance when one is given,
        otherwise the response text.
        """
        client = self._get_client()
        model = model or settings.gemini_model

        generation_config = {}
        if response_schema:
            generation_config["response_mime_type"] = "application/json"
            generation_config["response_schema"] = response_schema.model_json_schema()
        if system_instruction:
            generation_config["system_instruction"] = system_instruction
        if temperature is not None:
            generation_config["temperature"] = temperature

        async def _generate():
            return await client.aio.models.generate_content(
                model=model,
                contents=[prompt],
                config=types.GenerateContentConfig(**generation_config),
            )

        logger.info(
            "Starting Gemini content generation",
            model=model,
            has_schema=bool(response_schema),
        )
        response = await self._retry_with_backoff(_generate)

        if not response.text:
            raise AIServiceException(detail="Gemini returned an empty response", provider="Google")

        if response_schema:
            try:
                return response_schema.model_validate(json.loads(response.text))
            except (json.JSONDecodeError, ValidationError) as e:
                logger.error("Failed to parse structured response", error=str(e))
                raise AIServiceException(
                    detail="AI returned a malformed response", provider="Google"
                )
        return response.text
