"""
Single-turn LLM completions and tolerant JSON extraction from model output
"""
import json
import time
import logging
from typing import Optional, Type, TypeVar

from openai import OpenAI
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


class LLMResponseError(Exception):
    """LLM call failed or returned output that does not fit the expected schema"""
    pass


class LLMClient:
    """OpenAI chat completions with bounded retry and exponential backoff"""

    def __init__(self, api_key: str, model: str = 'gpt-4o-mini', retry_attempts: int = 3,
                 retry_backoff: float = 1.0, client: Optional[OpenAI] = None):
        self.model = model
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.client = client or OpenAI(api_key=api_key)

    def complete(self, prompt: str, max_tokens: int = 1000, temperature: float = 0.3) -> str:
        last_exc: Optional[Exception] = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                start = time.monotonic()
                completion = self.client.chat.completions.create(
                    model=self.model,
                    messages=[{'role': 'user', 'content': prompt}],
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
                logger.debug(f"LLM call succeeded | model={self.model} | latency={time.monotonic() - start:.2f}s")
                content = completion.choices[0].message.content if completion.choices else None
                if not content:
                    raise LLMResponseError("LLM returned an empty response")
                return content
            except Exception as exc:
                last_exc = exc
                logger.warning(f"LLM call failed (attempt {attempt}/{self.retry_attempts}): {exc}")
                if attempt < self.retry_attempts:
                    time.sleep(self.retry_backoff * (2 ** (attempt - 1)))

        raise LLMResponseError(f"LLM call failed after {self.retry_attempts} attempts: {last_exc}")


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith('```'):
        first_newline = text.find('\n')
        text = text[first_newline + 1:] if first_newline != -1 else text[3:]
        if text.rstrip().endswith('```'):
            text = text.rstrip()[:-3]
    return text.strip()


def extract_json_object(text: str) -> str:
    """Return the first balanced {...} object in text.

    Braces inside JSON strings (including escaped quotes) are ignored.
    """
    if not text:
        raise LLMResponseError("Empty LLM response")
    text = _strip_fences(text)

    start = text.find('{')
    if start == -1:
        raise LLMResponseError("No JSON object found in LLM response")

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    raise LLMResponseError("Unbalanced JSON object in LLM response")


def parse_llm_json(text: str, schema: Type[T]) -> T:
    raw = extract_json_object(text)
    try:
        return schema.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise LLMResponseError(f"LLM response does not match {schema.__name__}: {e}")
