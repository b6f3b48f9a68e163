# -*- coding: utf-8 -*-
"""
Structured-extraction reconciler.

Forces free-form LLM output into a JSON object or array:
  1. Strip ``` / ```json fences around the model output
  2. json.loads
  3. Check the top-level shape (object vs array)

Every parse returns a tagged result (Parsed | ParseFailure | SchemaMismatch).
No field-level validation happens here: downstream code treats every field
as optional and coerces mistyped values to None.

Two modes:
  reconcile_once → single generation, any failure raises ExtractionError
  reconcile      → up to max_attempts generations; each rejected output is
                   fed back into the prompt as a "previous attempt" note
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Protocol, Union

from app.errors import ExtractionError
from app.utils.logger import get_logger

logger = get_logger(__name__)


class Shape(str, Enum):
    OBJECT = "object"
    ARRAY  = "array"


@dataclass(frozen=True)
class Parsed:
    value: Any


@dataclass(frozen=True)
class ParseFailure:
    reason: str


@dataclass(frozen=True)
class SchemaMismatch:
    reason: str


ParseResult = Union[Parsed, ParseFailure, SchemaMismatch]


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


# ═══════════════════════════════════════════════════════════════════════════════
# STRIP + PARSE
# ═══════════════════════════════════════════════════════════════════════════════


_FENCED = re.compile(r"^```[ \t]*(?:json)?[ \t]*\n?(.*?)\n?[ \t]*```$", re.DOTALL | re.IGNORECASE)
_OPENING_FENCE = re.compile(r"^```[ \t]*(?:json)?[ \t]*\n?", re.IGNORECASE)

_PREVIEW_CHARS = 500


def strip_fences(text: str) -> str:
    """Remove a markdown code fence wrapping the whole output, if any."""
    text = (text or "").strip()
    m = _FENCED.match(text)
    if m:
        return m.group(1).strip()
    # Truncated output: opening fence without a closing one
    if text.startswith("```"):
        text = _OPENING_FENCE.sub("", text, count=1)
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _type_name(value: Any) -> str:
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    if value is None:
        return "null"
    return type(value).__name__


def parse_model_output(text: str, shape: Shape) -> ParseResult:
    cleaned = strip_fences(text)
    if not cleaned:
        return ParseFailure("empty response")

    try:
        value = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return ParseFailure(f"invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})")

    if shape is Shape.ARRAY and not isinstance(value, list):
        return SchemaMismatch(f"expected a JSON array, got {_type_name(value)}")
    if shape is Shape.OBJECT and not isinstance(value, dict):
        return SchemaMismatch(f"expected a JSON object, got {_type_name(value)}")

    return Parsed(value)


def _previous_attempt_note(attempt: int, output: str, reason: str) -> str:
    preview = (output or "").strip()[:_PREVIEW_CHARS]
    return (
        f"\n\nPREVIOUS ATTEMPT {attempt} WAS REJECTED: {reason}\n"
        f"Rejected output (truncated):\n{preview}\n"
        f"Fix the problem and respond only with valid JSON."
    )


# ═══════════════════════════════════════════════════════════════════════════════
# RECONCILER
# ═══════════════════════════════════════════════════════════════════════════════


class Reconciler:

    def __init__(self, llm: TextGenerator, max_attempts: int = 3):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._llm = llm
        self.max_attempts = max_attempts

    async def reconcile_once(self, prompt: str, shape: Shape, source: Optional[str] = None) -> Any:
        """Single generation. The caller decides whether a failure skips or aborts."""
        output = await self._llm.generate(prompt)
        result = parse_model_output(output, shape)

        if isinstance(result, Parsed):
            return result.value

        logger.warning(
            "Rejected %s output for %s: %s | raw=%r",
            shape.value, source or "<inline>", result.reason, output[:120],
        )
        raise ExtractionError(result.reason, attempts=1, source=source)

    async def reconcile(self, prompt: str, shape: Shape, source: Optional[str] = None) -> Any:
        """Bounded self-correcting loop. Exhaustion raises ExtractionError."""
        notes: List[str] = []
        reason = ""

        for attempt in range(1, self.max_attempts + 1):
            output = await self._llm.generate(prompt + "".join(notes))
            result = parse_model_output(output, shape)

            if isinstance(result, Parsed):
                if attempt > 1:
                    logger.info("Reconciled %s for %s on attempt %d", shape.value, source or "<inline>", attempt)
                return result.value

            if isinstance(result, SchemaMismatch):
                kind = "schema mismatch"
            else:
                kind = "parse failure"
            reason = result.reason
            logger.warning(
                "Attempt %d/%d %s for %s: %s",
                attempt, self.max_attempts, kind, source or "<inline>", reason,
            )
            notes.append(_previous_attempt_note(attempt, output, reason))

        raise ExtractionError(reason, attempts=self.max_attempts, source=source)
