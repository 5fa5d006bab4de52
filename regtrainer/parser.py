"""Turn the provider's raw reply into an analysis-shaped dict.

Parsing never fails. The reply is passed through an ordered chain of tiers;
each tier returns a dict when it can build a result or ``None`` to hand the
text on to the next tier. If a tier raises, the fixed basic-feedback result
is returned with the raw reply attached for diagnostics.
"""

import json
import logging
import re
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50
BASIC_FEEDBACK_SCORE = 40

FALLBACK_PROFESSIONAL_EXAMPLE = (
    "This regulation requires immediate compliance review and risk assessment. "
    "Financial institutions should evaluate operational impacts, allocate "
    "resources for implementation, and establish monitoring procedures. "
    "Estimated compliance costs and implementation timelines should be assessed "
    "based on current infrastructure capabilities."
)

TEXT_EXTRACTION_EXAMPLE = (
    "This regulation introduces new compliance requirements that require "
    "immediate attention. Organizations should conduct impact assessments, "
    "review current procedures, and develop implementation strategies with "
    "appropriate timelines and resource allocation."
)

BASIC_PROFESSIONAL_EXAMPLE = (
    "Professional regulatory impact analysis should include specific business "
    "implications, quantified costs or timelines, and actionable compliance "
    "requirements for effective client communication."
)

_SCORE_PATTERN = re.compile(r"score[\"']?\s*[:=]?\s*(\d{1,3})", re.IGNORECASE)

Tier = Callable[[str], Optional[dict]]


def extract_json_object(text: str) -> Optional[dict]:
    """Return the first JSON object embedded in ``text``, or ``None``."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(obj, dict):
                return obj
        start = text.find("{", start + 1)
    return None


def _has_required_fields(obj: dict) -> bool:
    score = obj.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return False
    feedback = obj.get("feedback")
    return isinstance(feedback, dict) and isinstance(feedback.get("items"), list)


def parse_structured(text: str) -> Optional[dict]:
    obj = extract_json_object(text)
    if obj is None or not _has_required_fields(obj):
        return None

    example = obj.get("professionalExample")
    if not isinstance(example, dict) or not str(example.get("impactAnalysis") or "").strip():
        logger.warning("Provider reply has no professional example, adding fallback")
        obj["professionalExample"] = {"impactAnalysis": FALLBACK_PROFESSIONAL_EXAMPLE}
    return obj


def parse_score_text(text: str) -> Optional[dict]:
    logger.warning("Provider reply is not structured JSON, extracting score from text")
    match = _SCORE_PATTERN.search(text)
    score = int(match.group(1)) if match else NEUTRAL_SCORE
    return {
        "score": max(0, min(100, score)),
        "feedback": {
            "items": [
                {
                    "type": "info",
                    "text": "The reviewer replied in an unexpected format; only the score could be read.",
                }
            ],
            "improvements": [
                "Review the specific feedback provided",
                "Focus on professional language and structure",
                "Ensure content demonstrates regulatory understanding",
            ],
        },
        "professionalExample": {"impactAnalysis": TEXT_EXTRACTION_EXAMPLE},
    }


def basic_feedback(raw_text: str) -> dict:
    return {
        "score": BASIC_FEEDBACK_SCORE,
        "feedback": {
            "items": [
                {"type": "warning", "text": "AI analysis encountered technical issues"}
            ],
            "improvements": [
                "Ensure summary is 30-100 words with specific regulatory details",
                "Include quantified business impacts and timelines",
                "Provide clear document structure with section headers",
            ],
        },
        "professionalExample": {"impactAnalysis": BASIC_PROFESSIONAL_EXAMPLE},
        "rawResponse": raw_text,
    }


TIERS: List[Tier] = [parse_structured, parse_score_text]


def parse_response(raw_text: str, tiers: Optional[List[Tier]] = None) -> dict:
    for tier in tiers if tiers is not None else TIERS:
        try:
            result = tier(raw_text)
        except Exception:
            logger.exception("Parser tier %s failed", tier.__name__)
            return basic_feedback(raw_text)
        if result is not None:
            return result
    return basic_feedback(raw_text)
