from typing import Optional
import httpx
from fastapi import APIRouter, Depends, HTTPException
from tgquiz.advice import (
    AdviceProvider, get_advice_provider, build_prompt, fallback_advice, FALLBACK_WARNING,
)
from tgquiz.log import get_logger
from tgquiz.schemas import AdviceRequest, AdviceResponse, ExplainRequest, ExplainResponse

log = get_logger(__name__)
router = APIRouter(prefix="/api/ai", tags=["ai"])


@router.post("/advice", response_model=AdviceResponse, response_model_exclude_none=True)
async def advice(
    data: AdviceRequest,
    provider: Optional[AdviceProvider] = Depends(get_advice_provider),
):
    """Short coaching verdict for a finished quiz or for per-topic statistics."""
    if provider is None:
        raise HTTPException(status_code=500, detail="AI API key not configured")

    text = await provider.advise(build_prompt(data))
    if text is None:
        return AdviceResponse(advice=fallback_advice(data), warning=FALLBACK_WARNING)
    return AdviceResponse(advice=text)


@router.post("/explain", response_model=ExplainResponse)
async def explain(
    data: ExplainRequest,
    provider: Optional[AdviceProvider] = Depends(get_advice_provider),
):
    """Why an answer was wrong. Problems are reported in the text, never as an error status."""
    if provider is None:
        return ExplainResponse(explanation="⚠️ ERROR: no API key")
    try:
        text = await provider.explain(data.question, data.wrong_answer, data.correct_answer)
    except httpx.HTTPError as e:
        log.error("Explanation request failed: %s", e)
        return ExplainResponse(explanation=f"⚠️ System error: {e}")
    return ExplainResponse(explanation=text)
