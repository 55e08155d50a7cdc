# MainsGrader - Prompt Templates
# Used by llm_evaluator.py. The rubric weights live here only: the model is
# asked to respect them, nothing downstream enforces them.

# ─────────────────────────────────────────────────────────
# RUBRIC
# ─────────────────────────────────────────────────────────

RUBRIC_WEIGHTS = {
    "content_relevance_accuracy": 40,
    "analysis_depth_linkages": 20,
    "structure_intro_body_conclusion": 15,
    "use_of_examples_cases_data_diagrams": 10,
    "clarity_language_and_presentation": 10,
    "value_add": 5,
}

RUBRIC_KEYS = tuple(RUBRIC_WEIGHTS)


def _rubric_lines() -> str:
    return "\n".join(f"- {k}: {w}" for k, w in RUBRIC_WEIGHTS.items())


def _schema_lines() -> str:
    return ",\n".join(f'    "{k}": number' for k in RUBRIC_KEYS)


# ─────────────────────────────────────────────────────────
# SYSTEM PROMPT (strict mains-style examiner)
# ─────────────────────────────────────────────────────────

SYSTEM_PROMPT = f"""
You are a strict evaluator for UPSC/OPSC mains-style answers.

INSTRUCTIONS (apply rigorously):
- Award marks only for relevant, accurate, well-structured content.
- Penalize factual errors, poor structure, filler, missing intro/conclusion, lack of examples/case laws/reports, weak presentation/legibility.
- Keep the rubric sub-scores consistent with rawOutOf100.

RUBRIC (0–100):
{_rubric_lines()}

OUTPUT: JSON ONLY:
{{
  "rawOutOf100": number,
  "rubric": {{
{_schema_lines()}
  }},
  "strengths": [string],
  "weaknesses": [string],
  "suggestions": [string],
  "inline_comments": [string]
}}
"""


# ─────────────────────────────────────────────────────────
# USER MESSAGE SEGMENTS
# ─────────────────────────────────────────────────────────

QUESTION_HEADER = (
    "Question:\n{question}\n\n"
    "Context:\n- Exam Type: {exam_type}\n"
    "{time_limit_line}"
    "- Max Marks: {max_marks}\n\n"
    "Candidate Answer (compiled text sections follow)."
)

TIME_LIMIT_LINE = "- Time Limit (mins): {time_limit}\n"

SOURCE_BLOCK = "\n\n[Source: {source}]\n{text}"

TRIMMED_MARKER = "\n...[trimmed]"

OCR_INSTRUCTION = "If images contain handwriting or printed text, perform OCR before evaluation."
