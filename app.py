# app.py: Teachback assessment service v1.0.0
# - Non-streaming OpenAI-style chat completions
# - Every request replays the client-held session; only skill ratings are stored

import json
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from uuid import uuid4

import requests
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationInfo, field_validator

import db, tutor
from env_validation import get_env_bool
from schemas import (
    KBMode,
    KBRecord,
    Persona,
    QuestionState,
    RQSResult,
    SkillRating,
    SoloDimensions,
    StateTransition,
    TeachingModeName,
    Turn,
)
from teaching_modes import SOLO_DIMENSIONS
from engines.elo import SkillRatingEngine, summarize_ratings
from engines.orchestrator import GenerationError, SessionContext, TurnOrchestrator
from engines.score_adapter import to_legacy_shape
from engines.scoring import calc_solo_score, get_scoring_strategy
from engines.validation import ValidationError, require_scale

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        # Validate environment variables first
        from env_validation import validate_environment
        validate_environment()

        db.init()
        logger.info(
            "OpenAI-style params in use: %s | scoring: %s",
            _base_params(),
            _active_strategy().version,
        )
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Teachback v1.0.0", version=APP_VERSION, lifespan=_lifespan)

SKILL_ENGINE = SkillRatingEngine()

_LLM_LOGGER = logging.getLogger("teachback.llm")
if not _LLM_LOGGER.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _LLM_LOGGER.addHandler(_handler)
_LLM_LOGGER.setLevel(logging.INFO)
_LLM_LOGGER.propagate = False


def _validation_payload(message: str, field: Optional[str]) -> Dict[str, Any]:
    return {"error": message, "field": field, "code": "VALIDATION_ERROR"}


@app.exception_handler(RequestValidationError)
async def _request_validation_error(_: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part != "body"]
    return JSONResponse(
        status_code=400,
        content=_validation_payload(first.get("msg", "Invalid request"), ".".join(location) or None),
    )


@app.exception_handler(ValidationError)
async def _score_validation_error(_: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content=_validation_payload(str(exc), exc.field))


def _safe_float(env_name: str, default: float) -> float:
    raw = os.getenv(env_name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _safe_int(env_name: str, default: int) -> int:
    raw = os.getenv(env_name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _base_params():
    """Only OpenAI-style sampling fields."""
    return {
        "temperature": _safe_float("LLM_TEMPERATURE", 0.7),
        "top_p": _safe_float("LLM_TOP_P", 0.95),
    }


def _active_strategy():
    return get_scoring_strategy(get_env_bool("USE_V3_SCORING"))


def _llm_call(messages: List[Dict[str, str]], max_tokens: Optional[int]) -> str:
    payload: Dict[str, Any] = {"model": tutor.MODEL_ID, "messages": messages, **_base_params()}
    if max_tokens is not None:
        payload["max_tokens"] = int(max_tokens)

    request_id = str(uuid4())
    start = time.perf_counter()
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None
    status = "error"
    try:
        try:
            r = requests.post(tutor.LLM_URL, json=payload, timeout=_safe_int("LLM_TIMEOUT", 120))
            if r.status_code == 400:
                # Fallback: some local servers reject the sampling fields
                minimal = {"model": tutor.MODEL_ID, "messages": messages}
                if max_tokens is not None:
                    minimal["max_tokens"] = int(max_tokens)
                r = requests.post(tutor.LLM_URL, json=minimal, timeout=_safe_int("LLM_TIMEOUT", 120))
            r.raise_for_status()
            data = r.json()
        except requests.HTTPError as e:
            raise GenerationError(f"LLM-HTTP {e.response.status_code}: {e.response.text[:300]}") from e
        except (requests.RequestException, ValueError) as e:
            raise GenerationError(f"LLM error: {e}") from e

        usage = data.get("usage") if isinstance(data, dict) else None
        if isinstance(usage, dict):
            tokens_in = usage.get("prompt_tokens")
            tokens_out = usage.get("completion_tokens")

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            try:
                content = data["choices"][0]["text"]
            except (KeyError, IndexError, TypeError) as exc:
                raise GenerationError(f"Unexpected LLM response: {str(data)[:300]}") from exc
        if not isinstance(content, str):
            raise GenerationError("LLM returned no text")
        status = "ok"
        return content
    finally:
        log_record = {
            "event": "llm_call",
            "request_id": request_id,
            "model": tutor.MODEL_ID,
            "latency_ms": int((time.perf_counter() - start) * 1000),
            "tokens_in": tokens_in,
            "tokens_out": tokens_out,
            "status": status,
        }
        _LLM_LOGGER.info(json.dumps(log_record, ensure_ascii=False))


def generate_reply(system: str, messages: List[Dict[str, str]], max_tokens: int) -> str:
    return _llm_call([{"role": "system", "content": system}, *messages], max_tokens)


def _orchestrator() -> TurnOrchestrator:
    # Resolve generate_reply at call time so it can be swapped out.
    return TurnOrchestrator(
        _active_strategy(),
        lambda system, messages, max_tokens: generate_reply(system, messages, max_tokens),
    )


# ---------- Request bodies ----------
class TeachBody(BaseModel):
    topic: str = Field(min_length=1, max_length=200)
    core_text: str = Field(default="", max_length=50000)
    mode: TeachingModeName = "concept"
    history: List[Turn] = Field(default_factory=list, max_length=40)
    force_finish: bool = False
    user_message: str = Field(default="", max_length=5000, validate_default=True)
    character: Optional[Persona] = None
    leading_penalty: int = Field(default=0, ge=0)
    gave_up_count: int = Field(default=0, ge=0)
    consecutive_fail: int = Field(default=0, ge=0)
    question_seeds: List[str] = Field(default_factory=list, max_length=10)
    rqs_history: List[RQSResult] = Field(default_factory=list)
    state_history: List[StateTransition] = Field(default_factory=list)
    current_state: Optional[QuestionState] = None
    kb_signals: List[KBRecord] = Field(default_factory=list)

    @field_validator("user_message")
    @classmethod
    def _message_required(cls, value: str, info: ValidationInfo) -> str:
        # force_finish is declared first so it is already validated here
        if not info.data.get("force_finish") and not value.strip():
            raise ValueError("user_message must not be empty")
        return value


class SoloRatingsBody(BaseModel):
    completeness: float
    depth: float
    clarity: float
    structural_coherence: float
    pedagogical_insight: float
    mode: TeachingModeName = "concept"

    def solo_values(self) -> Dict[str, float]:
        return self.model_dump(include=set(SOLO_DIMENSIONS))


class ScoreBody(SoloRatingsBody):
    kb_mode: KBMode = "mixed"
    rqs_avg: float = Field(default=0.5, ge=0.0, le=1.0)


class SkillRatingBody(SoloRatingsBody):
    topic: str = Field(min_length=1, max_length=200)
    ratings: List[SkillRating] = Field(default_factory=list)


class EloUpdateBody(SoloRatingsBody):
    user_id: str = Field(min_length=1, max_length=100)
    topic: str = Field(min_length=1, max_length=200)


def _solo_result(body: SoloRatingsBody, kb_mode: str = "mixed", rqs_avg: float = 0.5):
    values = body.solo_values()
    require_scale(values, 1, 5)
    return calc_solo_score(SoloDimensions(**values), body.mode, kb_mode, rqs_avg)


# ---------- Endpoints ----------
@app.get("/")
def root():
    return {
        "service": "teachback",
        "version": APP_VERSION,
        "scoring_version": _active_strategy().version,
    }


@app.post("/teach")
def teach(body: TeachBody):
    context = SessionContext(
        topic=body.topic,
        user_message=body.user_message,
        core_text=body.core_text,
        mode=body.mode,
        turns=tuple(body.history),
        force_finish=body.force_finish,
        persona=body.character or Persona(),
        leading_penalty_total=body.leading_penalty,
        abandonment_count=body.gave_up_count,
        consecutive_fail=body.consecutive_fail,
        rqs_history=tuple(body.rqs_history),
        kb_history=tuple(body.kb_signals),
        current_state=body.current_state,
        state_transitions=tuple(body.state_history),
        question_seeds=tuple(body.question_seeds),
    )
    try:
        outcome = _orchestrator().handle(context)
    except GenerationError as exc:
        logger.error("Generator failed for topic %r: %s", body.topic, exc)
        raise HTTPException(status_code=502, detail="The language model is unavailable. Please try again.") from exc
    return outcome.model_dump()


@app.post("/score")
def score(body: ScoreBody):
    result = _solo_result(body, body.kb_mode, body.rqs_avg)
    return {"v3": result.model_dump(), "v2_compat": to_legacy_shape(result).model_dump()}


@app.post("/skills/rating")
def skills_rating(body: SkillRatingBody):
    result = _solo_result(body)
    updated, changes = SKILL_ENGINE.apply_session(
        body.topic,
        body.ratings,
        SKILL_ENGINE.observations_from_score(result),
    )
    return {
        "ratings": [rating.model_dump() for rating in updated],
        "changes": [change.model_dump() for change in changes],
    }


@app.get("/elo")
def elo_ratings(user_id: str, topic: Optional[str] = None, history_limit: int = 50):
    ratings = db.list_skill_ratings(user_id, topic)
    return {
        "user_id": user_id,
        "ratings": [rating.model_dump() for rating in ratings],
        "summary": summarize_ratings(ratings),
        "history": db.list_skill_rating_history(user_id, topic, limit=max(1, min(history_limit, 500))),
    }


@app.post("/elo")
def elo_update(body: EloUpdateBody):
    result = _solo_result(body)
    stored = db.list_skill_ratings(body.user_id, body.topic)
    updated, changes = SKILL_ENGINE.apply_session(
        body.topic,
        stored,
        SKILL_ENGINE.observations_from_score(result),
    )
    for rating in updated:
        db.upsert_skill_rating(body.user_id, rating)
    for change in changes:
        db.log_skill_rating_change(body.user_id, body.topic, change)
    logger.info(
        json.dumps(
            {
                "event": "skill_rating_update",
                "user_id": body.user_id,
                "topic": body.topic,
                "deltas": {change.dimension: change.delta for change in changes},
            },
            ensure_ascii=False,
            sort_keys=True,
        )
    )
    return {
        "user_id": body.user_id,
        "topic": body.topic,
        "score": result.model_dump(),
        "ratings": [rating.model_dump() for rating in updated],
        "changes": [change.model_dump() for change in changes],
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=_safe_int("PORT", 8000))
