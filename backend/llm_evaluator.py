"""
MainsGrader - LLM Evaluator Module
Composes the single multi-part request sent to the scoring model and parses
its JSON reply.

User message layout:
  1. header text: question, exam type, optional time limit, max marks
  2. answer text: every text source, labelled, capped at 150,000 chars
  3. images     : first 12 images, then an OCR instruction
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Sequence

from backend.content_assembler import TextSource, ImageBlob
from prompts.evaluation_prompts import (
    SYSTEM_PROMPT,
    QUESTION_HEADER,
    TIME_LIMIT_LINE,
    SOURCE_BLOCK,
    TRIMMED_MARKER,
    OCR_INSTRUCTION,
)

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS    = 150_000
MAX_IMAGES        = 12
DEFAULT_EXAM_TYPE = "GS"


@dataclass
class LLMEvaluation:
    data: Dict = field(default_factory=dict)
    provider: str = ""
    model: str = ""
    raw_response: str = ""
    latency_ms: float = 0.0


def _fmt_number(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def compile_texts(texts: Sequence[TextSource], limit: int = MAX_TEXT_CHARS) -> str:
    """Join labelled text sources; cut to `limit` chars plus a trimmed marker."""
    big_text = "\n".join(
        SOURCE_BLOCK.format(source=t.source or "unknown", text=t.text) for t in texts
    )
    if len(big_text) > limit:
        logger.info("Answer text trimmed from %d to %d characters.", len(big_text), limit)
        return big_text[:limit] + TRIMMED_MARKER
    return big_text


class LLMEvaluator:
    """
    Builds the evaluation request and sends it through the LLM client.
    The client is created lazily from the environment unless injected.
    """

    def __init__(self, client=None):
        self._client = client

    def _get_client(self):
        if self._client is None:
            from backend.llm_provider import LLMClient
            self._client = LLMClient.from_env()
            logger.info("LLMEvaluator using: %s", self._client.active_provider)
        return self._client

    # ─────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────

    def evaluate(
        self,
        question: str,
        max_marks: float,
        exam_type: Optional[str] = None,
        time_limit: Optional[float] = None,
        texts: Sequence[TextSource] = (),
        images: Sequence[ImageBlob] = (),
    ) -> LLMEvaluation:
        """
        One model call. Provider failures propagate (as UpstreamError);
        an unusable reply degrades to an empty dict.
        """
        parts  = self.build_user_content(question, max_marks, exam_type, time_limit, texts, images)
        client = self._get_client()

        response = client.generate(SYSTEM_PROMPT, parts)
        return LLMEvaluation(
            data=self._parse_response(response.text),
            provider=response.provider,
            model=response.model,
            raw_response=response.text,
            latency_ms=response.latency_ms,
        )

    # ─────────────────────────────────────────────────────
    # Prompt builder
    # ─────────────────────────────────────────────────────

    def build_user_content(
        self,
        question: str,
        max_marks: float,
        exam_type: Optional[str] = None,
        time_limit: Optional[float] = None,
        texts: Sequence[TextSource] = (),
        images: Sequence[ImageBlob] = (),
    ) -> List[Dict]:
        header = QUESTION_HEADER.format(
            question=question,
            exam_type=exam_type or DEFAULT_EXAM_TYPE,
            time_limit_line=TIME_LIMIT_LINE.format(time_limit=_fmt_number(time_limit)) if time_limit else "",
            max_marks=_fmt_number(max_marks),
        )
        parts: List[Dict] = [{"type": "text", "text": header}]

        if texts:
            parts.append({"type": "text", "text": compile_texts(texts)})

        if images:
            if len(images) > MAX_IMAGES:
                logger.info("Forwarding %d of %d images.", MAX_IMAGES, len(images))
            for img in images[:MAX_IMAGES]:
                parts.append({"type": "image", "mime": img.mime, "data_url": img.data_url})
            parts.append({"type": "text", "text": OCR_INSTRUCTION})

        return parts

    # ─────────────────────────────────────────────────────
    # Response Parser
    # ─────────────────────────────────────────────────────

    def _parse_response(self, raw: str) -> Dict:
        cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", (raw or "").strip())

        try:
            data = json.loads(cleaned or "{}")
        except ValueError:
            # Some providers wrap the object in prose; take the outermost braces.
            json_match = re.search(r"\{.*\}", cleaned, re.DOTALL)
            try:
                data = json.loads(json_match.group()) if json_match else {}
            except ValueError as e:
                logger.warning("Failed to parse JSON: %s. Raw: %s", e, (raw or "")[:200])
                data = {}

        if not isinstance(data, dict):
            logger.warning("Model returned %s instead of an object; ignoring it.", type(data).__name__)
            return {}
        return data
