from .schemas import Submission

REFERENCE_CHAR_LIMIT = 3000
EMPTY_REFERENCE_PLACEHOLDER = "No document content provided"

ANALYSIS_PROMPT = """\
You are an expert regulatory writing instructor with 15+ years of experience \
training financial services professionals. Analyze this student's regulatory \
newsflash submission with detailed feedback AND provide a professional example.

REGULATORY DOCUMENT EXCERPT:
{reference}

STUDENT SUBMISSION:
Executive Summary ({word_count} words): "{summary}"

Impact Analysis: "{impacts}"

Document Structure: "{structure}"

EVALUATION CRITERIA:
1. Content Quality: Is this coherent, professional writing that demonstrates understanding?
2. Summary Length: Should be 30-100 words, appropriately detailed
3. Business Focus: Does it identify specific client impacts (costs, timelines, risks)?
4. Regulatory Understanding: Shows grasp of compliance requirements?
5. Professional Language: Appropriate tone for executive audience?

CRITICAL ASSESSMENT REQUIRED:
- If content is nonsensical, gibberish, or placeholder text, score very low (0-20) \
and be explicit about quality issues
- If content is coherent but basic, provide specific improvement guidance
- If content is strong, identify what makes it effective

MANDATORY REQUIREMENT - PROFESSIONAL IMPACT ANALYSIS EXAMPLE:
You MUST provide a professional version of the impact analysis that demonstrates \
best practices. Write 2-3 sentences that:
- Identify specific business impacts with concrete details
- Include timelines, costs, or quantified metrics where possible
- Use professional regulatory language
- Focus on actionable client concerns
- Based on the actual regulatory document provided

Respond ONLY with valid JSON in this exact structure (no markdown, no code fences):
{{
  "score": <integer from 0 to 100>,
  "feedback": {{
    "items": [
      {{"type": "good|warning|error", "text": "<specific observation about their work>"}},
      {{"type": "good|warning|error", "text": "<another specific point>"}}
    ],
    "improvements": [
      "<specific actionable improvement>",
      "<specific actionable improvement>",
      "<specific actionable improvement>"
    ]
  }},
  "professionalExample": {{
    "impactAnalysis": "<professional 2-3 sentence impact analysis for this document>"
  }}
}}

IMPORTANT: You must always include the professionalExample field with a meaningful \
impact analysis, even if the student's work is poor quality.
"""


def count_words(text: str) -> int:
    return len([w for w in text.strip().split() if w])


def _reference_excerpt(reference_text: str) -> str:
    if not reference_text:
        return EMPTY_REFERENCE_PLACEHOLDER
    return reference_text[:REFERENCE_CHAR_LIMIT]


def build_prompt(submission: Submission, reference_text: str) -> str:
    return ANALYSIS_PROMPT.format(
        reference=_reference_excerpt(reference_text),
        word_count=count_words(submission.summary),
        summary=submission.summary,
        impacts=submission.impacts,
        structure=submission.structure,
    )


def build_payload(
    submission: Submission,
    reference_text: str,
    *,
    model: str,
    max_tokens: int,
    temperature: float,
) -> dict:
    """Render the provider request body for one analysis.

    Pure: the same submission, reference text and settings always yield an
    identical payload.
    """
    return {
        "model": model,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "messages": [
            {"role": "user", "content": build_prompt(submission, reference_text)}
        ],
    }
