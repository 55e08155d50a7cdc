"""
MainsGrader - Evaluation Engine
Orchestrates one evaluation: (optional) file assembly → single model call →
clamp → rescale → result.

  ┌──────────────┬─────────────────────────────────────────────┐
  │ Field        │ Rule                                        │
  ├──────────────┼─────────────────────────────────────────────┤
  │ rawOutOf100  │ model value clamped to [0, 100], else 0     │
  │ totalScaled  │ round(raw / 100 × maxMarks), halves up      │
  │ rubric       │ known criteria with numeric values, else {} │
  │ feedback     │ lists of strings, else []                   │
  └──────────────┴─────────────────────────────────────────────┘

The rubric is reported as returned; rawOutOf100 is never re-derived from it.
"""

import math
import logging
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Sequence, Tuple

from backend.content_assembler import (
    ContentAssembler, AssembledPayload, UploadedFile, TextSource, ImageBlob,
)
from backend.llm_evaluator import LLMEvaluator
from prompts.evaluation_prompts import RUBRIC_KEYS

logger = logging.getLogger(__name__)

FEEDBACK_KEYS = ("strengths", "weaknesses", "suggestions", "inline_comments")


# ─────────────────────────────────────────────────────────
# Result dataclass
# ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EvaluationResult:
    raw_out_of_100: float
    total_scaled: int
    max_marks: float
    rubric: Dict[str, float] = field(default_factory=dict)
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    inline_comments: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "rawOutOf100": self.raw_out_of_100,
            "rubric": dict(self.rubric),
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "suggestions": list(self.suggestions),
            "inline_comments": list(self.inline_comments),
            "totalScaled": self.total_scaled,
            "maxMarks": self.max_marks,
        }


# ─────────────────────────────────────────────────────────
# Score helpers
# ─────────────────────────────────────────────────────────

def _to_number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(n) else n


def clamp(value, lo: float = 0.0, hi: float = 100.0) -> float:
    """Clamp to [lo, hi]; anything non-numeric becomes lo."""
    n = _to_number(value)
    if n is None:
        return lo
    return max(lo, min(hi, n))


def scale_score(raw_out_of_100: float, max_marks: float) -> int:
    """round(raw / 100 × max_marks) with .5 rounded up, never above max_marks."""
    product = raw_out_of_100 * max_marks / 100
    if not math.isfinite(product):
        # raw * max overflows for huge max_marks
        product = raw_out_of_100 / 100 * max_marks
    scaled = int(math.floor(product + 0.5))
    return max(0, min(scaled, int(math.floor(max_marks))))


def normalise_rubric(raw) -> Dict[str, float]:
    if not isinstance(raw, dict):
        return {}
    rubric = {}
    for key in RUBRIC_KEYS:
        n = _to_number(raw.get(key))
        if n is not None:
            rubric[key] = n
    return rubric


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


# ─────────────────────────────────────────────────────────
# Evaluation Engine
# ─────────────────────────────────────────────────────────

class EvaluationEngine:

    def __init__(
        self,
        llm_evaluator: Optional[LLMEvaluator] = None,
        assembler: Optional[ContentAssembler] = None,
    ):
        self.llm_evaluator = llm_evaluator or LLMEvaluator()
        self.assembler = assembler or ContentAssembler()

    def evaluate(
        self,
        question: str,
        max_marks: float,
        exam_type: Optional[str] = None,
        time_limit: Optional[float] = None,
        texts: Sequence[TextSource] = (),
        images: Sequence[ImageBlob] = (),
    ) -> EvaluationResult:
        logger.info(
            "Evaluating answer: %d text source(s), %d image(s), max_marks=%s",
            len(texts), len(images), max_marks,
        )
        llm = self.llm_evaluator.evaluate(
            question=question,
            max_marks=max_marks,
            exam_type=exam_type,
            time_limit=time_limit,
            texts=texts,
            images=images,
        )
        return self._build_result(llm.data, max_marks)

    def evaluate_files(
        self,
        files: Sequence[UploadedFile],
        question: str,
        max_marks: float,
        exam_type: Optional[str] = None,
        time_limit: Optional[float] = None,
    ) -> Tuple[EvaluationResult, AssembledPayload]:
        """Server-side variant: assemble uploaded files, then evaluate."""
        payload = self.assembler.assemble(files)
        result = self.evaluate(
            question, max_marks, exam_type, time_limit,
            texts=payload.texts, images=payload.images,
        )
        return result, payload

    # ─────────────────────────────────────────────────────

    def _build_result(self, data: Dict, max_marks: float) -> EvaluationResult:
        raw    = clamp(data.get("rawOutOf100"), 0, 100)
        rubric = normalise_rubric(data.get("rubric"))

        if rubric and abs(sum(rubric.values()) - raw) > 1:
            logger.debug("Rubric sum %.1f differs from rawOutOf100 %.1f", sum(rubric.values()), raw)

        return EvaluationResult(
            raw_out_of_100=raw,
            total_scaled=scale_score(raw, max_marks),
            max_marks=float(max_marks),
            rubric=rubric,
            **{key: _string_list(data.get(key)) for key in FEEDBACK_KEYS},
        )
