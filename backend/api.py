"""
MainsGrader - FastAPI Backend
==============================
REST API for rubric-based answer evaluation.

  POST /evaluate          JSON {question, maxMarks, examType?, timeLimit?, texts?, images?}
  POST /evaluate/upload   multipart form; files are assembled server side
  GET  /health

The model call and file assembly are blocking, so both run in a thread-pool
executor to keep the event loop free.

Status codes:
  400  missing question / maxMarks, or a malformed body
  405  wrong method
  413  upload larger than MAX_FILE_SIZE_MB
  500  provider credentials missing, or the evaluation failed
"""

import os
import time
import logging
import asyncio
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional, List, Dict

from fastapi import FastAPI, UploadFile, File, Form, HTTPException, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from dotenv import load_dotenv

load_dotenv()

from backend.content_assembler import UploadedFile, TextSource, ImageBlob
from backend.errors import ConfigurationError
from backend.evaluator import EvaluationEngine
from backend.llm_evaluator import LLMEvaluator
from backend.llm_provider import LLMClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

MAX_FILE_MB = int(os.getenv("MAX_FILE_SIZE_MB", "20"))

_executor = ThreadPoolExecutor(
    max_workers=int(os.getenv("EVAL_WORKERS", "2")),
    thread_name_prefix="eval-worker",
)


# ─────────────────────────────────────────────────────────
# Global engine (lazy init, singleton)
# ─────────────────────────────────────────────────────────

_engine: Optional[EvaluationEngine] = None


def get_engine() -> EvaluationEngine:
    """Build the engine on first use. Raises ConfigurationError without credentials."""
    global _engine
    if _engine is None:
        client = LLMClient.from_env()
        _engine = EvaluationEngine(llm_evaluator=LLMEvaluator(client=client))
        logger.info("Evaluation engine ready with %s.", client.active_provider)
    return _engine


# ─────────────────────────────────────────────────────────
# App setup
# ─────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        get_engine()
        logger.info("MainsGrader API started.")
    except ConfigurationError as e:
        logger.warning("MainsGrader API started without a usable provider: %s", e)
    yield
    logger.info("MainsGrader API shutting down.")
    _executor.shutdown(wait=False)

app = FastAPI(
    title="MainsGrader API",
    description="Rubric-based evaluation of mains-style written answers.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = {str(part) for err in exc.errors() for part in err.get("loc", ())}
    if fields & {"question", "maxMarks", "max_marks"}:
        detail = "Missing question or maxMarks"
    else:
        detail = "Invalid request body"
    logger.info("Rejected %s %s: %s", request.method, request.url.path, detail)
    return JSONResponse(status_code=400, content={"detail": detail})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error: %s", exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# ─────────────────────────────────────────────────────────
# Pydantic schemas
# ─────────────────────────────────────────────────────────

class TextSourceIn(BaseModel):
    source: Optional[str] = None
    text: str = ""


class ImageBlobIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mime: str = "image/jpeg"
    data_url: str = Field(alias="dataUrl")


class EvaluateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str
    max_marks: float = Field(alias="maxMarks", gt=0, allow_inf_nan=False)
    exam_type: Optional[str] = Field(None, alias="examType")
    time_limit: Optional[float] = Field(None, alias="timeLimit")
    texts: List[TextSourceIn] = []
    images: List[ImageBlobIn] = []

    @field_validator("question")
    @classmethod
    def validate_question(cls, v):
        if not v.strip():
            raise ValueError("question must not be empty")
        return v


class EvaluationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    raw_out_of_100: float = Field(alias="rawOutOf100")
    rubric: Dict[str, float]
    strengths: List[str]
    weaknesses: List[str]
    suggestions: List[str]
    inline_comments: List[str]
    total_scaled: int = Field(alias="totalScaled")
    max_marks: float = Field(alias="maxMarks")


class FileStatusOut(BaseModel):
    name: str
    kind: str
    status: str
    message: str = ""


class UploadEvaluationResponse(EvaluationResponse):
    files: List[FileStatusOut]


# ─────────────────────────────────────────────────────────
# Endpoints
# ─────────────────────────────────────────────────────────

@app.get("/")
async def root():
    return {
        "message": "MainsGrader API is running.",
        "version": VERSION,
        "endpoints": ["/evaluate", "/evaluate/upload", "/health"],
    }


@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": time.time()}


# ── Evaluate pre-assembled content ────────────────────────

@app.post("/evaluate", response_model=EvaluationResponse, summary="Evaluate an assembled answer")
async def evaluate_answer(
    request: EvaluateRequest,
    engine: EvaluationEngine = Depends(get_engine),
):
    texts  = [TextSource(t.source or "unknown", t.text) for t in request.texts]
    images = [ImageBlob(i.mime, i.data_url) for i in request.images]

    loop = asyncio.get_running_loop()
    try:
        result = await loop.run_in_executor(_executor, partial(
            engine.evaluate,
            question=request.question,
            max_marks=request.max_marks,
            exam_type=request.exam_type,
            time_limit=request.time_limit,
            texts=texts,
            images=images,
        ))
    except Exception as e:
        logger.error("Evaluation error: %s", e, exc_info=True)
        raise HTTPException(500, f"Evaluation failed: {e}")

    return EvaluationResponse(**result.to_dict())


# ── Upload files and evaluate ─────────────────────────────

@app.post("/evaluate/upload", response_model=UploadEvaluationResponse,
          summary="Upload answer files, assemble them and evaluate")
async def evaluate_upload(
    question: str = Form(...),
    max_marks: float = Form(..., alias="maxMarks", gt=0, allow_inf_nan=False),
    exam_type: Optional[str] = Form(None, alias="examType"),
    time_limit: Optional[float] = Form(None, alias="timeLimit"),
    files: Optional[List[UploadFile]] = File(None),
    engine: EvaluationEngine = Depends(get_engine),
):
    if not question.strip():
        raise HTTPException(400, "Missing question or maxMarks")

    uploaded = []
    for f in files or []:
        data = await f.read()
        if len(data) > MAX_FILE_MB * 1024 * 1024:
            raise HTTPException(413, f"File too large: {f.filename}. Max {MAX_FILE_MB} MB.")
        uploaded.append(UploadedFile(f.filename or "upload", data, f.content_type))

    loop = asyncio.get_running_loop()
    try:
        result, payload = await loop.run_in_executor(_executor, partial(
            engine.evaluate_files,
            uploaded,
            question=question,
            max_marks=max_marks,
            exam_type=exam_type,
            time_limit=time_limit,
        ))
    except Exception as e:
        logger.error("Evaluation error: %s", e, exc_info=True)
        raise HTTPException(500, f"Evaluation failed: {e}")

    return UploadEvaluationResponse(
        **result.to_dict(),
        files=[FileStatusOut(**s.to_dict()) for s in payload.files],
    )


# ─────────────────────────────────────────────────────────
# Run
# ─────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "backend.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_excludes=["tests/*", "*.pyc"],
    )
