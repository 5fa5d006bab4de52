import logging
import math
from typing import Any, Mapping, Union

from .schemas import AnalysisResult, FeedbackKind, Source

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 50
DEFAULT_PROFESSIONAL_EXAMPLE = (
    "Professional regulatory impact analysis should include specific business "
    "implications, quantified costs or timelines, and actionable compliance "
    "requirements for effective client communication."
)

_KINDS = {k.value for k in FeedbackKind}
_SOURCES = {s.value for s in Source}


def _coerce_score(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_SCORE
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return DEFAULT_SCORE
    if isinstance(value, (int, float)) and not math.isnan(value):
        if math.isinf(value):
            return 100 if value > 0 else 0
        return max(0, min(100, int(round(value))))
    return DEFAULT_SCORE


def _coerce_items(items: Any) -> list:
    if not isinstance(items, list):
        return []
    out = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        text = item.get("text")
        if not isinstance(text, str) or not text.strip():
            continue
        kind = item.get("type", item.get("kind"))
        if isinstance(kind, FeedbackKind):
            kind = kind.value
        if not isinstance(kind, str) or kind not in _KINDS:
            kind = FeedbackKind.INFO.value
        out.append({"type": kind, "text": text})
    return out


def _coerce_improvements(improvements: Any) -> list:
    if not isinstance(improvements, list):
        return []
    return [s for s in improvements if isinstance(s, str) and s.strip()]


def normalize_result(
    result: Union[AnalysisResult, Mapping[str, Any]],
    *,
    source: Source = Source.PROVIDER,
) -> AnalysisResult:
    """Enforce the result schema whichever producer built ``result``.

    Accepts either an ``AnalysisResult`` or the loosely-shaped dict the
    response parser produces. ``source`` is only used when the input does not
    already carry one. Idempotent.
    """
    if isinstance(result, AnalysisResult):
        raw_response = result.raw_response
        data = result.model_dump(by_alias=True, mode="json")
    else:
        raw_response = result.get("rawResponse")
        data = dict(result)

    feedback = data.get("feedback")
    if not isinstance(feedback, Mapping):
        feedback = {}

    example = data.get("professionalExample")
    impact = example.get("impactAnalysis") if isinstance(example, Mapping) else None
    if not isinstance(impact, str) or not impact.strip():
        logger.debug("Result has no professional example, using default")
        impact = DEFAULT_PROFESSIONAL_EXAMPLE

    declared = data.get("source")
    if isinstance(declared, Source):
        declared = declared.value
    if not isinstance(declared, str) or declared not in _SOURCES:
        declared = Source(source).value

    message = data.get("message")
    return AnalysisResult.model_validate(
        {
            "score": _coerce_score(data.get("score")),
            "feedback": {
                "items": _coerce_items(feedback.get("items")),
                "improvements": _coerce_improvements(feedback.get("improvements")),
            },
            "professionalExample": {"impactAnalysis": impact},
            "source": declared,
            "enhanced": bool(data.get("enhanced", True)),
            "message": message if isinstance(message, str) and message else None,
            "raw_response": raw_response if isinstance(raw_response, str) else None,
        }
    )
