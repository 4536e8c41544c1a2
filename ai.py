"""
Thin async wrapper over the OpenAI Responses API.

responses(model, input, text_format=None):
  - with text_format (a pydantic model) -> parsed model instance
  - without -> the response's output text
"""

import logging
from typing import Any, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel

import config

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_client: AsyncOpenAI | None = None


def is_configured() -> bool:
    return bool(config.OPENAI_API_KEY)


def get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        _client = AsyncOpenAI(api_key=config.OPENAI_API_KEY, base_url=config.OPENAI_BASE_URL)
    return _client


async def responses(model: str, input: list[dict[str, Any]], text_format: type[T] | None = None) -> T | str:
    client = get_client()
    if text_format is not None:
        response = await client.responses.parse(model=model, input=input, text_format=text_format)
        if response.output_parsed is None:
            raise ValueError(f"{model} returned no parsable {text_format.__name__}")
        return response.output_parsed

    response = await client.responses.create(model=model, input=input)
    logger.debug(f"{model} returned {len(response.output_text or '')} chars")
    return response.output_text or ""


async def close() -> None:
    global _client
    if _client is not None:
        await _client.close()
        _client = None
