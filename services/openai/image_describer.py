"""Description: Best-effort image captioning using OpenAI's Responses API."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from openai import AsyncOpenAI

from services.openai.image_prompts import DESCRIBE_PROMPT
from services.openai.media_inputs import build_inputs
from services.openai.response_parser import extract_output_text, extract_usage

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL = "gpt-4o-mini"


@dataclass(frozen=True)
class DescriptionResult:
    """Either a generated caption (`available`) or the reason none was produced."""

    text: Optional[str] = None
    reason: Optional[str] = None
    latency: float = 0.0

    @property
    def available(self) -> bool:
        return self.text is not None

    @classmethod
    def ok(cls, text: str, latency: float = 0.0) -> "DescriptionResult":
        return cls(text=text, latency=latency)

    @classmethod
    def unavailable(cls, reason: str, latency: float = 0.0) -> "DescriptionResult":
        return cls(reason=reason, latency=latency)


class DescriptionGenerator(Protocol):
    async def describe(self, image_bytes: bytes, mime_type: str) -> DescriptionResult: ...


class ImageDescriber:
    """Generate a short caption for an image with a single model call.

    Failures never escape `describe`: they are logged and returned as an
    unavailable result so ingestion can continue without a caption.
    """

    def __init__(self, client: AsyncOpenAI, model: str = DEFAULT_MODEL, prompt: str = DESCRIBE_PROMPT) -> None:
        """Initialize the describer with an OpenAI async client.

        The client should be built with `max_retries=0` and a timeout; this
        class issues exactly one request per call.
        """
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model
        self.prompt = prompt

    async def describe(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> DescriptionResult:
        start_time = time.time()
        try:
            inputs = build_inputs(self.prompt, image_bytes=image_bytes, mime_type=mime_type)
            response = await self._create_response(inputs)
            text = extract_output_text(response)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            latency = time.time() - start_time
            LOGGER.error("AI description failed after %.2fs: %s", latency, exc)
            return DescriptionResult.unavailable(str(exc) or type(exc).__name__, latency=latency)

        latency = time.time() - start_time
        usage: Dict[str, Optional[int]] = extract_usage(response)
        LOGGER.info(
            "Image described in %.2fs (input_tokens=%s, output_tokens=%s)",
            latency,
            usage["input_tokens"],
            usage["output_tokens"],
        )
        return DescriptionResult.ok(text, latency=latency)

    async def _create_response(self, inputs: Any) -> Any:
        """Send the captioning request to the OpenAI Responses API."""
        return await self.client.responses.create(model=self.model, input=inputs)
