import re

from .prompt import count_words
from .schemas import (
    AnalysisResult,
    Feedback,
    FeedbackItem,
    FeedbackKind,
    ProfessionalExample,
    Source,
)

DEGENERATE_SCORE = 10
SUMMARY_MIN_WORDS = 30
SUMMARY_MAX_WORDS = 100
IMPACTS_MIN_CHARS = 100
STRUCTURE_MIN_CHARS = 50

LOCAL_PROFESSIONAL_EXAMPLE = (
    "This regulatory change requires immediate compliance assessment by "
    "[implementation deadline]. Financial institutions must evaluate operational "
    "modifications, allocate compliance resources, and update risk management "
    "frameworks. Implementation costs are estimated at $X-Y per institution, "
    "with phased rollout recommended over 6-12 months."
)

LOCAL_MESSAGE = (
    "Enhanced local analysis provided. The AI reviewer was unavailable and "
    "will provide more detailed feedback when it is back."
)

# Short all-letter text, a character repeated 4+ times, or no letters at all.
_DEGENERATE = re.compile(r"^[a-z\s]{1,10}$|(.)\1{3,}|^[^a-z]*$", re.IGNORECASE)


def is_degenerate(summary: str) -> bool:
    return _DEGENERATE.search(summary.strip()) is not None


def score_submission(submission) -> AnalysisResult:
    """Score ``submission`` with fixed local rules.

    Deterministic: the same submission always yields the same result. Rules
    are additive and the total is clamped to 0-100.
    """
    score = 0
    items = []
    improvements = []

    if is_degenerate(submission.summary):
        score = DEGENERATE_SCORE
        items.append(
            FeedbackItem(
                kind=FeedbackKind.ERROR,
                text="Content appears fragmented or insufficient. "
                "Please provide coherent regulatory analysis.",
            )
        )
        if len(submission.impacts) <= IMPACTS_MIN_CHARS:
            improvements.append("Expand impact analysis with specific business implications")
        if len(submission.structure) <= STRUCTURE_MIN_CHARS:
            improvements.append("Provide more detailed document structure outline")
    else:
        words = count_words(submission.summary)
        if SUMMARY_MIN_WORDS <= words <= SUMMARY_MAX_WORDS:
            score += 35
            items.append(
                FeedbackItem(
                    kind=FeedbackKind.GOOD,
                    text=f"Professional summary length ({words} words)",
                )
            )
        else:
            score += max(5, words)
            items.append(
                FeedbackItem(
                    kind=FeedbackKind.WARNING,
                    text=f"Summary length needs adjustment ({words} words, "
                    f"need {SUMMARY_MIN_WORDS}-{SUMMARY_MAX_WORDS})",
                )
            )

        if len(submission.impacts) > IMPACTS_MIN_CHARS:
            score += 30
            items.append(
                FeedbackItem(kind=FeedbackKind.GOOD, text="Comprehensive impact analysis")
            )
        else:
            score += 15
            improvements.append("Expand impact analysis with specific business implications")

        if len(submission.structure) > STRUCTURE_MIN_CHARS:
            score += 25
        else:
            improvements.append("Provide more detailed document structure outline")

    if score < 50:
        improvements.insert(0, "Focus on coherent, professional regulatory content")

    return AnalysisResult(
        score=min(score, 100),
        feedback=Feedback(items=items, improvements=improvements),
        professional_example=ProfessionalExample(impact_analysis=LOCAL_PROFESSIONAL_EXAMPLE),
        source=Source.LOCAL,
        enhanced=True,
        message=LOCAL_MESSAGE,
    )
