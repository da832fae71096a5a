"""
Structured LLM analysis.

One place for the invoke -> parse JSON -> validate -> fall back pattern.
Callers pass a pydantic schema and a named default; any failure (no model
configured, timeout, transport error, non-JSON output, schema mismatch)
yields the default marked as degraded instead of an exception.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .providers import LLMClient

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

JSON_ONLY_INSTRUCTION = (
    "Respond with a single valid JSON object and nothing else. "
    "Do not wrap it in markdown."
)


class StructuredAnalysisError(Exception):
    """The model could not produce a valid structured result."""


@dataclass
class AnalysisOutcome(Generic[T]):
    """Result of a structured analysis call."""
    value: T
    degraded: bool = False
    error: Optional[str] = None


def clean_json_block(text: str) -> str:
    """Strip markdown fences and a leading 'json' label."""
    s = re.sub(r'^\s*```(?:json)?\s*', '', text, flags=re.I)
    s = re.sub(r'\s*```\s*$', '', s)
    s = re.sub(r'^\s*json[:\s]*', '', s, flags=re.I)
    return s


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the first JSON object found in model output.

    Raises:
        StructuredAnalysisError: No object could be parsed
    """
    if not text or not text.strip():
        raise StructuredAnalysisError("Empty model output")

    s = clean_json_block(text)
    match = re.search(r'\{.*\}', s, flags=re.S)
    if not match:
        raise StructuredAnalysisError("No JSON object in model output")

    # Trailing commas are the most common defect
    candidate = re.sub(r',\s*(?=[}\]])', '', match.group(0))
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise StructuredAnalysisError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise StructuredAnalysisError("Model output is not a JSON object")
    return data


class StructuredAnalyzer:
    """Runs schema-validated LLM analyses with a bounded timeout."""

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        timeout_seconds: float = 20.0,
        temperature: float = 0.2,
        max_tokens: int = 800,
    ):
        self.llm = llm
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def enabled(self) -> bool:
        return self.llm is not None

    async def run(self, system_prompt: str, user_prompt: str, schema: Type[T]) -> T:
        """
        Invoke the model and validate its output.

        Raises:
            StructuredAnalysisError: On any failure
        """
        if self.llm is None:
            raise StructuredAnalysisError("No language model configured")

        try:
            text = await asyncio.wait_for(
                self.llm.complete(
                    f"{system_prompt}\n\n{JSON_ONLY_INSTRUCTION}",
                    user_prompt,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise StructuredAnalysisError(f"Model timed out after {self.timeout_seconds}s") from e
        except Exception as e:
            raise StructuredAnalysisError(f"Model call failed: {e}") from e

        data = parse_json_object(text)
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise StructuredAnalysisError(f"Schema validation failed: {e.error_count()} errors") from e

    async def analyze(
        self,
        name: str,
        system_prompt: str,
        user_prompt: str,
        schema: Type[T],
        default: T,
    ) -> AnalysisOutcome[T]:
        """Run an analysis, substituting the default on failure."""
        try:
            value = await self.run(system_prompt, user_prompt, schema)
            return AnalysisOutcome(value=value)
        except StructuredAnalysisError as e:
            logger.warning(f"Structured analysis '{name}' degraded: {e}")
            return AnalysisOutcome(value=default, degraded=True, error=str(e))
