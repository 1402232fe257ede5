import math
import re
from typing import Optional
import httpx
from fastapi import Depends
from tgquiz.config import Settings, get_settings
from tgquiz.log import get_logger
from tgquiz.schemas import AdviceRequest

log = get_logger(__name__)

MAX_ADVICE_CHARS = 200
DEFAULT_ADVICE = "Keep practising! Focus on the topics where you made the most mistakes."
FALLBACK_WARNING = "AI is unavailable, an automatic verdict was used"

COACH_INTRO = "You are a friendly instructor preparing a student for the driving theory exam."

RESULT_PROMPT_TEMPLATE = """{intro}
The student has just finished a test. Result: {correct} of {total} ({performance}%).

{errors_block}
Give ONE short piece of advice (at most 200 characters) on what to focus on to pass the exam.

Requirements:
- If there are mistakes: name the specific topic or question type to brush up on
- Good result (70%+): praise and suggest how to consolidate it
- Average result (50-70%): motivate and say what to concentrate on
- Low result (<50%): gently point out that more practice is needed
- Talk like a mentor: friendly but professional
- Be concrete, no generic phrases
- Use 1-2 emoji"""

ANALYTICS_PROMPT_TEMPLATE = """{intro}
The student asks you to analyse their per-topic statistics.

Average result across all topics: {average}%.

{topics_block}
Give ONE short verdict (at most 200 characters) with a concrete recommendation.

Requirements:
- If there are weak spots: name the main problem and the topic to work on
- Good result (70%+): praise and suggest how to consolidate it
- Average result (50-70%): motivate and say what to concentrate on
- Low result (<50%): gently point out that more practice is needed
- Talk like a mentor: friendly but professional
- Use 1-2 emoji"""

EXPLAIN_PROMPT_TEMPLATE = (
    "You are a friendly driving instructor. In one or two sentences explain to the student "
    "why the answer '{wrong}' to the question '{question}' is wrong and why '{correct}' is right."
)


def _round(value: float) -> int:
    return math.floor(value + 0.5)


def build_result_prompt(data: AdviceRequest) -> str:
    performance = (
        _round(data.correct_count / data.total_count * 100) if data.total_count > 0 else 0
    )
    if data.errors:
        lines = [
            f'{i}. Question: "{e.question}" - chose "{e.wrong}", correct is "{e.correct}"'
            for i, e in enumerate(data.errors, start=1)
        ]
        errors_block = "Student mistakes:\n" + "\n".join(lines) + "\n"
    else:
        errors_block = "The student answered every question correctly!\n"
    return RESULT_PROMPT_TEMPLATE.format(
        intro=COACH_INTRO,
        correct=data.correct_count,
        total=data.total_count,
        performance=performance,
        errors_block=errors_block,
    )


def build_analytics_prompt(data: AdviceRequest) -> str:
    topics = data.user_errors or []
    if topics:
        lines = []
        for i, t in enumerate(topics, start=1):
            name = t.topic_name or f"Topic {t.topic_id or i}"
            lines.append(f'{i}. "{name}" - {t.error_count} mistakes, {_round(t.percentage)}% correct')
        topics_block = f"Weak spots (TOP-{len(topics)}):\n" + "\n".join(lines) + "\n"
    else:
        topics_block = "The student is doing well in every topic!\n"
    return ANALYTICS_PROMPT_TEMPLATE.format(
        intro=COACH_INTRO,
        average=_round(data.total_score or 0),
        topics_block=topics_block,
    )


def build_prompt(data: AdviceRequest) -> str:
    if data.is_analytics:
        return build_analytics_prompt(data)
    return build_result_prompt(data)


def fallback_advice(data: AdviceRequest) -> str:
    """Deterministic verdict used when no model answered."""
    if data.is_analytics and data.user_errors:
        weakest = data.user_errors[0]
        topic = weakest.topic_name or "this topic"
        percentage = _round(weakest.percentage)
        if percentage < 50:
            return (
                f'Work on "{topic}" 📚 - {weakest.error_count} mistakes and only '
                f"{percentage}% correct. Give it more attention."
            )
        if percentage < 80:
            return (
                f'You are doing well! 💪 For a perfect score revisit "{topic}" - '
                f"{weakest.error_count} mistakes there."
            )
        return "Great job! 🎯 Keep practising to lock in the result."
    if data.is_analytics:
        average = _round(data.total_score or 0)
        if average >= 80:
            return "Great job! 💪 Keep it up."
        if average >= 50:
            return "Good result! 💪 Keep practising for a perfect score."
        return "More practice needed 📚. Revisit the topics with the most mistakes."
    return DEFAULT_ADVICE


def _extract_text(response: httpx.Response) -> Optional[str]:
    try:
        return response.json()["candidates"][0]["content"]["parts"][0]["text"]
    except (ValueError, KeyError, IndexError, TypeError):
        return None


_RETRY_PATTERNS = [
    re.compile(r'"retryDelay"\s*:\s*"(\d+(?:\.\d+)?)s"', re.IGNORECASE),
    re.compile(r"retry in (\d+(?:\.\d+)?)s", re.IGNORECASE),
]


def retry_delay_seconds(error_text: str, default: int = 60) -> int:
    """Seconds the API asked us to wait, read from a 429 error body."""
    for pattern in _RETRY_PATTERNS:
        match = pattern.search(error_text)
        if match:
            return math.ceil(float(match.group(1)))
    return default


def _is_rate_limited(status_code: int, error_text: str) -> bool:
    return status_code == 429 or "429" in error_text or "quota" in error_text.lower()


class AdviceProvider:
    """Client for the Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        models: list[str],
        explain_model: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.models = models
        self.explain_model = explain_model
        self.timeout = timeout
        self.transport = transport

    def _url(self, model: str) -> str:
        if not model.startswith("models/"):
            model = f"models/{model}"
        return f"{self.base_url}/{model}:generateContent"

    async def _generate(self, client: httpx.AsyncClient, model: str, prompt: str, **config) -> httpx.Response:
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        if config:
            body["generationConfig"] = config
        return await client.post(self._url(model), params={"key": self.api_key}, json=body)

    async def advise(self, prompt: str) -> Optional[str]:
        """Try each configured model in turn. Returns None if none answered."""
        last_error = None
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for model in self.models:
                try:
                    response = await self._generate(
                        client, model, prompt, maxOutputTokens=256, temperature=0.7
                    )
                except httpx.HTTPError as e:
                    last_error = f"{model}: {e}"
                    log.warning("Advice model %s unreachable: %s", model, e)
                    continue

                if response.is_success:
                    text = _extract_text(response) or DEFAULT_ADVICE
                    log.info("Advice produced by %s", model)
                    return text[:MAX_ADVICE_CHARS]

                last_error = f"{model}: {response.status_code} - {response.text[:100]}"
                log.warning("Advice model %s failed, trying next: %s", model, last_error)

        log.error("All advice models failed. Last error: %s", last_error)
        return None

    async def explain(self, question: str, wrong: str, correct: str) -> str:
        prompt = EXPLAIN_PROMPT_TEMPLATE.format(question=question, wrong=wrong, correct=correct)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await self._generate(client, self.explain_model, prompt)

        if not response.is_success:
            error_text = response.text
            if _is_rate_limited(response.status_code, error_text):
                delay = retry_delay_seconds(error_text)
                return f"⏳ The AI is overloaded. It will be back in {delay} seconds, please wait."
            return f"⚠️ Google error ({response.status_code}): {error_text}"

        return _extract_text(response) or "Could not get an explanation."


def get_advice_provider(settings: Settings = Depends(get_settings)) -> Optional[AdviceProvider]:
    if not settings.gemini_api_key:
        return None
    return AdviceProvider(
        api_key=settings.gemini_api_key,
        base_url=settings.gemini_base_url,
        models=settings.gemini_models,
        explain_model=settings.gemini_explain_model,
    )
