"""Recovery of structured data from freeform model output.

Models wrap JSON in markdown fences, prepend prose, leave trailing commas and
decorate enum values with emoji. The pipeline here turns such text into a
schema-validated value in four steps:

1. extract_payload: find the JSON-looking part of the text
2. repair_payload: parse it, repairing syntax when plain parsing fails
3. normalize_payload: canonicalize known fields (e.g., severity)
4. validate_payload: check the result against a pydantic schema

Each step is total: it returns a StepResult and never raises.
``parse_structured`` chains them and always returns a ValidatedOutput.
"""

import json
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from json_repair import repair_json
from pydantic import TypeAdapter, ValidationError

from lean_intel.llm.errors import ExtractionFailure, SchemaValidationFailure
from lean_intel.models.reports import SEVERITY_FIELDS

logger = logging.getLogger(__name__)

T = TypeVar("T")

RAW_PAYLOAD_LIMIT = 500

SEVERITY_LEVELS = ("Critical", "High", "Medium", "Low", "Informational")

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_ANY_FENCE = re.compile(r"```\s*([\s\S]*?)\s*```")
_LANGUAGE_TAG = re.compile(r"^(?:json|javascript|js)(?:\s*[\r\n]+|\s+(?=\{))", re.IGNORECASE)
_NON_ALNUM = re.compile(r"[^0-9a-zA-Z]+")

Normalizer = Callable[[Any], Any]


@dataclass
class StepResult:
    """Outcome of one pipeline step.

    Attributes:
        ok: Whether the step succeeded
        value: Step output when ok
        error: Diagnostic message when not ok
    """

    ok: bool
    value: Any = None
    error: str | None = None


@dataclass
class ValidationSuccess(Generic[T]):
    """Payload that passed schema validation."""

    data: T
    ok: bool = field(default=True, init=False)

    def unwrap(self) -> T:
        return self.data


@dataclass
class ValidationFailure:
    """Payload that could not be recovered or did not fit its schema.

    Attributes:
        error: Summary message
        errors: Field-path-qualified validation messages
        raw_payload: Offending text, truncated
        stage: Pipeline step that failed (extract, repair, validate)
    """

    error: str
    errors: list[str] = field(default_factory=list)
    raw_payload: str = ""
    stage: str = "validate"
    ok: bool = field(default=False, init=False)

    def unwrap(self) -> Any:
        """Raise the failure as an exception."""
        if self.stage == "validate":
            raise SchemaValidationFailure(self.error, self.errors, self.raw_payload)
        raise ExtractionFailure(self.error, self.raw_payload)


ValidatedOutput = ValidationSuccess[T] | ValidationFailure


def truncate_payload(text: str, limit: int = RAW_PAYLOAD_LIMIT) -> str:
    return text if len(text) <= limit else text[:limit]


def strip_language_tag(text: str) -> str:
    """Remove a leading ``json``/``javascript``/``js`` token left by a fence."""
    cleaned = text.strip()
    match = _LANGUAGE_TAG.match(cleaned)
    if match:
        cleaned = cleaned[match.end() :].strip()
    return cleaned


def extract_markdown(text: str) -> str:
    """Unwrap markdown output that the model put inside a code fence."""
    trimmed = text.strip()
    if trimmed.startswith("#") or not trimmed.startswith("```"):
        return trimmed
    lines = trimmed.splitlines()[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def extract_payload(text: str) -> StepResult:
    """Locate the JSON payload in model output.

    Tries, in order: a ```json fence, any fence (minus a stray language
    tag), the span from the first ``{`` to the last ``}``, and finally the
    whole text with a language tag stripped.
    """
    if not isinstance(text, str) or not text.strip():
        return StepResult(ok=False, error="Empty response")

    trimmed = text.strip()

    match = _JSON_FENCE.search(trimmed)
    if match:
        return StepResult(ok=True, value=match.group(1).strip())

    match = _ANY_FENCE.search(trimmed)
    if match:
        return StepResult(ok=True, value=strip_language_tag(match.group(1)))

    first = trimmed.find("{")
    last = trimmed.rfind("}")
    if first != -1 and last > first:
        return StepResult(ok=True, value=trimmed[first : last + 1])

    return StepResult(ok=True, value=strip_language_tag(trimmed))


def repair_payload(text: str) -> StepResult:
    """Parse a JSON payload, repairing malformed syntax if needed."""
    try:
        return StepResult(ok=True, value=json.loads(text))
    except (json.JSONDecodeError, TypeError):
        pass

    try:
        repaired = repair_json(text, return_objects=True)
    except Exception as e:
        return StepResult(ok=False, error=f"JSON repair failed: {e}")

    if repaired in ("", None):
        return StepResult(ok=False, error="No JSON structure could be recovered")

    logger.debug("Repaired malformed JSON payload")
    return StepResult(ok=True, value=repaired)


def normalize_severity(value: Any) -> str:
    """Map a free-form severity label onto the canonical levels.

    ``"🔴 CRITICAL!"`` becomes ``"Critical"``; ``"moderate"`` becomes
    ``"Medium"``; anything unrecognized becomes ``"Informational"``.
    """
    if not isinstance(value, str):
        return "Informational"

    cleaned = _NON_ALNUM.sub("", value).lower()
    if "critical" in cleaned:
        return "Critical"
    if "high" in cleaned:
        return "High"
    if "medium" in cleaned or "moderate" in cleaned:
        return "Medium"
    if "low" in cleaned or "minimal" in cleaned:
        return "Low"
    return "Informational"


def _items_at(data: Any, path: str) -> list[Any]:
    node = data
    for part in path.split("."):
        if not isinstance(node, dict):
            return []
        node = node.get(part)
    return node if isinstance(node, list) else []


def normalize_payload(
    data: Any,
    list_fields: Iterable[str] = (),
    normalizers: Mapping[str, Normalizer] | None = None,
) -> StepResult:
    """Apply field normalizers to the items of list fields.

    Args:
        data: Parsed payload (modified in place)
        list_fields: Dotted paths of lists whose items are normalized
            (e.g., "criticalIssues", "vulnerabilities.dependencies")
        normalizers: Item key to normalizer function; defaults to
            severity normalization

    Returns:
        StepResult carrying the normalized payload
    """
    normalizers = normalizers if normalizers is not None else {"severity": normalize_severity}

    try:
        for path in list_fields:
            for item in _items_at(data, path):
                if not isinstance(item, dict):
                    continue
                for key, normalize in normalizers.items():
                    if key in item:
                        item[key] = normalize(item[key])
    except Exception as e:
        return StepResult(ok=False, value=data, error=f"Normalization failed: {e}")

    return StepResult(ok=True, value=data)


def format_validation_errors(error: ValidationError) -> list[str]:
    """Render pydantic errors as ``path.to.field: message`` strings."""
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ()))
        message = detail.get("msg", "invalid")
        messages.append(f"{location}: {message}" if location else message)
    return messages


def validate_payload(data: Any, schema: Any) -> StepResult:
    """Validate a payload against a pydantic model or any type TypeAdapter accepts."""
    try:
        value = TypeAdapter(schema).validate_python(data)
    except ValidationError as e:
        return StepResult(ok=False, value=format_validation_errors(e), error="Schema validation failed")
    except Exception as e:
        return StepResult(ok=False, value=[], error=f"Schema validation failed: {e}")
    return StepResult(ok=True, value=value)


def parse_structured(
    text: str,
    schema: Any,
    severity_fields: Iterable[str] | None = None,
) -> ValidatedOutput[Any]:
    """Run the full pipeline over model output.

    Args:
        text: Raw model output
        schema: Pydantic model (or type) describing the payload
        severity_fields: Dotted paths of lists whose items carry a severity;
            defaults to the paths registered for the schema

    Returns:
        ValidationSuccess with the validated value, or ValidationFailure
        with the raw payload truncated for diagnostics
    """
    raw = text if isinstance(text, str) else ""
    if severity_fields is None:
        severity_fields = SEVERITY_FIELDS.get(schema, ())

    extracted = extract_payload(raw)
    if not extracted.ok:
        return ValidationFailure(
            error=extracted.error or "Extraction failed",
            raw_payload=truncate_payload(raw),
            stage="extract",
        )

    parsed = repair_payload(extracted.value)
    if not parsed.ok:
        return ValidationFailure(
            error=parsed.error or "Repair failed",
            raw_payload=truncate_payload(extracted.value),
            stage="repair",
        )

    normalized = normalize_payload(parsed.value, severity_fields)
    if not normalized.ok:
        return ValidationFailure(
            error=normalized.error or "Normalization failed",
            raw_payload=truncate_payload(extracted.value),
            stage="validate",
        )

    validated = validate_payload(normalized.value, schema)
    if not validated.ok:
        errors = validated.value or []
        logger.debug("Validation errors: %s", "; ".join(errors))
        return ValidationFailure(
            error=validated.error or "Schema validation failed",
            errors=errors,
            raw_payload=truncate_payload(extracted.value),
            stage="validate",
        )

    return ValidationSuccess(validated.value)
