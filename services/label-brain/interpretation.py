"""Field interpretation: prompt the language model, parse and validate its JSON.

The model reply is untrusted. Anything that cannot be parsed or does not fit
the field schema degrades to an empty field set; the caller never sees an
exception from this step.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from llm_client import LLMClient, LLMServiceError, LLMServiceUnavailable
from models import FIELD_NAMES, ExtractedFields, WineType
from prompts import build_label_prompt

logger = logging.getLogger(__name__)

# Fields where the model may legitimately answer with a JSON number
NUMERIC_FIELDS = {"vintage", "alcoholContent"}

_TYPE_ALIASES = {"rose": WineType.ROSE.value, "rosato": WineType.ROSE.value}
_WINE_TYPES = {t.value for t in WineType}


@dataclass
class ValidationResult:
    """Outcome of validating a parsed model reply.

    ``dropped`` lists fields removed without failing the whole reply
    (blank values, out-of-enumeration wine types).
    """

    ok: bool
    fields: ExtractedFields = field(default_factory=ExtractedFields)
    errors: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)


async def interpret(ocr_text: str, llm_client: LLMClient) -> ExtractedFields:
    """Turn an OCR transcript into validated label fields."""
    prompt = build_label_prompt(ocr_text)

    try:
        raw_text = await llm_client.complete(prompt)
    except (LLMServiceUnavailable, LLMServiceError) as e:
        logger.warning("Interpretation degraded, language model call failed: %s", e)
        return ExtractedFields()

    return parse_model_reply(raw_text)


def parse_model_reply(raw: str) -> ExtractedFields:
    """Parse and validate a model reply. Returns empty fields on any failure."""
    parsed = try_parse_json(raw)
    if parsed is None:
        return ExtractedFields()

    result = validate_fields(parsed)
    if not result.ok:
        logger.warning("Interpretation degraded, reply failed validation: %s", "; ".join(result.errors))
        return ExtractedFields()

    if result.dropped:
        logger.info("Dropped unusable fields from model reply: %s", ", ".join(result.dropped))

    return result.fields


def try_parse_json(raw: str) -> dict | None:
    """Try to extract a JSON object from the model output.

    Handles: direct JSON, markdown fences, preamble text and
    <think>...</think> blocks.
    """
    if not raw:
        return None

    cleaned = re.sub(r"<think>.*?</think>", "", raw, flags=re.DOTALL).strip()

    # Try direct parse first
    try:
        result = json.loads(cleaned)
        if isinstance(result, dict):
            return result
    except json.JSONDecodeError:
        pass

    # Try to find JSON block in markdown code fences
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", cleaned, re.DOTALL)
    if match:
        try:
            result = json.loads(match.group(1).strip())
            if isinstance(result, dict):
                return result
        except json.JSONDecodeError:
            pass

    # Outermost { ... } span, field objects are nested one level deep
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            result = json.loads(cleaned[start:end + 1])
            if isinstance(result, dict):
                return result
        except json.JSONDecodeError:
            pass

    logger.warning("Could not parse JSON from model response: %s", cleaned[:200])
    return None


def validate_fields(parsed: Any) -> ValidationResult:
    """Check a parsed reply against the label field schema.

    Unknown keys are ignored. A structurally wrong field fails the whole
    reply; blank values and unknown wine types only drop that field.
    """
    if not isinstance(parsed, dict):
        return ValidationResult(ok=False, errors=["reply is not a JSON object"])

    accepted: dict[str, dict] = {}
    errors: list[str] = []
    dropped: list[str] = []

    for key in FIELD_NAMES:
        raw = parsed.get(key)
        if raw is None:
            continue

        if not isinstance(raw, dict):
            errors.append(f"{key}: expected an object with value and confidence")
            continue

        confidence = _check_confidence(raw.get("confidence"))
        if confidence is None:
            errors.append(f"{key}: confidence must be a number")
            continue

        value, error = _check_value(key, raw.get("value"))
        if error:
            errors.append(f"{key}: {error}")
            continue
        if value is None:
            dropped.append(key)
            continue

        accepted[key] = {"value": value, "confidence": confidence}

    if errors:
        return ValidationResult(ok=False, errors=errors, dropped=dropped)

    return ValidationResult(ok=True, fields=ExtractedFields.model_validate(accepted), dropped=dropped)


def _check_confidence(raw: Any) -> float | None:
    """Return the confidence clamped to [0, 1], or None if it is not a number."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    if math.isnan(raw):
        return None
    return min(1.0, max(0.0, float(raw)))


def _check_value(key: str, raw: Any) -> tuple[str | None, str | None]:
    """Normalize a field value to a string.

    Returns (value, error). A None value with no error means the field
    carries nothing usable and should be dropped.
    """
    if key in NUMERIC_FIELDS and isinstance(raw, (int, float)) and not isinstance(raw, bool):
        if isinstance(raw, float) and raw.is_integer():
            raw = int(raw)
        return str(raw), None

    if key == "grapes" and isinstance(raw, list):
        if not all(isinstance(g, str) for g in raw):
            return None, "grapes list must contain strings"
        raw = ", ".join(g.strip() for g in raw if g.strip())

    if not isinstance(raw, str):
        return None, "value must be a string"

    value = raw.strip()
    if not value:
        return None, None

    if key == "type":
        wine_type = _TYPE_ALIASES.get(value.lower(), value.lower())
        if wine_type not in _WINE_TYPES:
            logger.info("Model returned unknown wine type %r", value)
            return None, None
        return wine_type, None

    return value, None
