from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

REVIEW_PROMPT = """You are an expert resume reviewer for tech industry professionals. Analyze this resume and provide high-quality, actionable feedback.

Resume content:
{resumeContent}

Semantic structure:
{semanticMap}

Rules:
1. suggestedValue MUST contain the actual improved text, never instructions about what to write.
2. Do not flag normal resume conventions (sentence fragments in bullets, omitted pronouns) as issues.
3. Only report issues you can point to in the resume content.

Respond with JSON only, using this schema:
{
  "overallScore": number (0-100),
  "industryDetected": string | null,
  "strengths": [string],
  "suggestions": [
    {
      "id": string,
      "type": "text_improvement" | "missing_section" | "add_content",
      "severity": "critical" | "important" | "suggestion",
      "title": string,
      "description": string,
      "targetSemanticType": string | null,
      "currentValue": string | null,
      "suggestedValue": string | null,
      "canQuickApply": boolean,
      "previewRequired": boolean
    }
  ],
  "missingSections": [
    {"section": string, "importance": "required" | "recommended" | "optional", "reason": string}
  ]
}"""

SYNTHESIS_PROMPT = """You are synthesizing {modelCount} independent AI resume reviews into ONE high-quality result.

Original resume:
{resumeContent}

Individual reviews:
{modelReviews}

Instructions:
1. Merge suggestions that describe the same issue; keep the clearest wording.
2. Prefer suggestions that several reviewers agree on; drop nitpicks only one reviewer raised unless they are critical.
3. suggestedValue must be literal replacement text for currentValue, never an instruction.
4. Rank suggestions by severity (critical, important, suggestion).
5. overallScore is your calibrated judgement informed by the individual scores.

Respond with JSON only, using the same schema as the individual reviews:
{"overallScore": number, "industryDetected": string | null, "strengths": [string], "suggestions": [...], "missingSections": [...]}"""

VERIFICATION_PROMPT = """You are a quality filter for resume review suggestions. Remove low-quality, nitpicky, or incorrect suggestions.

Resume content:
{resumeContent}

Suggestions to verify:
{suggestions}

A suggestion is INVALID when it flags something that is not actually in the resume, contradicts the resume, is a pure matter of taste, or its suggestedValue is an instruction rather than replacement text.

Respond with JSON only:
{"verifiedSuggestions": [{"id": string, "isValid": boolean, "reason": string}]}"""


def fill_prompt_template(template: str, values: Mapping[str, Any]) -> str:
    """Substitute ``{name}`` placeholders; other braces are left untouched."""
    filled = template
    for key, value in values.items():
        filled = filled.replace("{" + key + "}", str(value))
    return filled


def build_review_prompt(resume_content: str, semantic_map: str | None) -> str:
    return fill_prompt_template(
        REVIEW_PROMPT,
        {
            "resumeContent": resume_content,
            "semanticMap": semantic_map or "No semantic map provided",
        },
    )


def format_model_reviews(reviews: Sequence[Any]) -> str:
    blocks = []
    for review in reviews:
        findings = [finding.model_dump(mode="json") for finding in review.findings]
        missing = [section.model_dump(mode="json") for section in review.missing_sections]
        blocks.append(
            f"=== Review from {review.model_name} ({review.reference.provider.value}) ===\n"
            f"Score: {review.overall_score}\n"
            f"Industry: {review.industry_detected or 'Not detected'}\n"
            f"Strengths: {', '.join(review.strengths)}\n"
            f"Suggestions: {json.dumps(findings, indent=2, ensure_ascii=False)}\n"
            f"Missing Sections: {json.dumps(missing, indent=2, ensure_ascii=False)}\n"
        )
    return "\n\n".join(blocks)


def build_synthesis_prompt(reviews: Sequence[Any], resume_content: str) -> str:
    return fill_prompt_template(
        SYNTHESIS_PROMPT,
        {
            "modelCount": len(reviews),
            "modelReviews": format_model_reviews(reviews),
            "resumeContent": resume_content,
        },
    )


def build_verification_prompt(findings: Sequence[Any], resume_content: str) -> str:
    payload = [
        {
            "id": finding.id,
            "title": finding.title,
            "description": finding.description,
            "type": finding.category,
            "targetSemanticType": finding.target_ref,
            "suggestedValue": finding.suggested_value,
        }
        for finding in findings
    ]
    return fill_prompt_template(
        VERIFICATION_PROMPT,
        {
            "resumeContent": resume_content,
            "suggestions": json.dumps(payload, indent=2, ensure_ascii=False),
        },
    )
