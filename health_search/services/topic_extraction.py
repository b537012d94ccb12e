"""
Topic Extractor
Infers health topics, intent and confidence for a query using an
OpenAI-compatible chat-completions endpoint (OpenRouter by default)

Failure is never surfaced: missing key, budget exhaustion, timeouts and
malformed responses all degrade to a local keyword heuristic with zero cost.
"""
import asyncio
import json
import math
import re
from typing import Any, Dict, List, Optional, Tuple
import logging

import httpx

from health_search.exceptions import BudgetExceeded, UpstreamError, UpstreamTimeout
from health_search.models.results import Intent, ProcessedQuery
from health_search.services.budget_guard import BudgetGuard
from health_search.utils.formatting import strip_markdown_code_blocks

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a health information assistant. Analyze the user's health query "
    "and respond with valid JSON only, using exactly these keys:\n"
    '- "healthTopics": array of short, lowercase health topics\n'
    '- "intent": one of "information_seeking", "improvement_advice", "other"\n'
    '- "confidence": number between 0 and 1'
)

INTENT_ALIASES = {
    "information_seeking": Intent.INFORMATION_SEEKING,
    "improvement_advice": Intent.IMPROVEMENT_ADVICE,
    "other": Intent.OTHER,
    # Labels used by earlier prompt versions
    "health_improvement": Intent.IMPROVEMENT_ADVICE,
    "protocol_request": Intent.IMPROVEMENT_ADVICE,
    "symptom_relief": Intent.IMPROVEMENT_ADVICE,
}

DEFAULT_CONFIDENCE = 0.5


# =============================================================================
# LOCAL HEURISTIC
# =============================================================================

# Topic -> words/phrases that indicate it
HEALTH_KEYWORDS: Dict[str, List[str]] = {
    "sleep": ["sleep", "insomnia", "circadian", "melatonin", "rest", "tired", "fatigue", "drowsy"],
    "stress management": ["stress", "anxiety", "cortisol", "worry", "tension", "overwhelmed", "panic"],
    "exercise": ["exercise", "workout", "fitness", "strength", "cardio", "training", "muscle"],
    "nutrition": ["nutrition", "diet", "food", "eating", "supplement", "vitamin", "mineral"],
    "pain": ["pain", "ache", "hurt", "sore", "inflammation", "chronic", "joint", "back"],
    "focus": ["focus", "concentration", "attention", "productivity"],
    "mental health": ["depression", "mood", "memory", "cognitive", "brain", "mental"],
    "gut health": ["stomach", "digestion", "digestive", "gut", "gut health", "intestinal", "bloating", "nausea", "acid"],
    "hormones": ["hormone", "hormones", "testosterone", "estrogen", "thyroid"],
    "immune health": ["immune", "immunity", "infection", "cold", "flu", "virus", "bacteria", "sick"],
    "heart health": ["heart", "cardiovascular", "blood pressure", "cholesterol", "circulation"],
    "metabolism": ["metabolism", "metabolic", "insulin", "weight", "fat loss", "glucose"],
}

IMPROVEMENT_CUES = [
    "improve", "optimize", "better", "boost", "increase", "reduce", "fix", "help",
    "protocol", "how to", "tips", "relief", "relieve", "get rid", "stop",
]

INFORMATION_CUES = ["what", "why", "how", "does", "is", "are", "explain", "learn", "tell me"]


def clean_query(query: str) -> str:
    cleaned = re.sub(r"[^\w\s]", " ", query.lower())
    return re.sub(r"\s+", " ", cleaned).strip()


def _contains_phrase(cleaned: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}\b", cleaned) is not None


def heuristic_topics(query: str) -> List[str]:
    """Topics whose keywords appear as whole words or phrases in the query"""
    cleaned = clean_query(query)
    return [
        topic for topic, keywords in HEALTH_KEYWORDS.items()
        if any(_contains_phrase(cleaned, keyword) for keyword in keywords)
    ]


def heuristic_processed_query(query: str) -> ProcessedQuery:
    """Degraded ProcessedQuery built without any upstream call"""
    cleaned = clean_query(query)
    topics = heuristic_topics(query)

    if any(_contains_phrase(cleaned, cue) for cue in IMPROVEMENT_CUES):
        intent = Intent.IMPROVEMENT_ADVICE
    elif topics or "?" in query or any(_contains_phrase(cleaned, cue) for cue in INFORMATION_CUES):
        intent = Intent.INFORMATION_SEEKING
    else:
        intent = Intent.OTHER

    confidence = min(0.2 + 0.1 * len(topics), 0.6) if topics else 0.1

    return ProcessedQuery(
        health_topics=tuple(topics) if topics else ("general health",),
        intent=intent,
        confidence=confidence,
        cost=0.0,
        degraded=True,
    )


# =============================================================================
# UPSTREAM RESPONSE PARSING
# =============================================================================

def normalize_topics(raw: Any) -> Tuple[str, ...]:
    if not isinstance(raw, list):
        raise ValueError("healthTopics must be a list")
    topics: List[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        topic = item.strip().lower()
        if topic and topic not in topics:
            topics.append(topic)
    return tuple(topics)


def normalize_intent(raw: Any) -> Intent:
    if not isinstance(raw, str):
        return Intent.OTHER
    return INTENT_ALIASES.get(raw.strip().lower(), Intent.OTHER)


def normalize_confidence(raw: Any) -> float:
    if raw is None or isinstance(raw, bool):
        return DEFAULT_CONFIDENCE
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if value != value:  # NaN
        return DEFAULT_CONFIDENCE
    return max(0.0, min(value, 1.0))


def _non_negative_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0


def parse_completion(body: Dict[str, Any]) -> Tuple[Tuple[str, ...], Intent, float]:
    """
    Pull topics/intent/confidence out of a chat-completions body

    Raises:
        ValueError, KeyError, IndexError, TypeError: body is unusable
    """
    content = body["choices"][0]["message"]["content"]
    if not isinstance(content, str):
        raise ValueError("completion content is not text")

    data = json.loads(strip_markdown_code_blocks(content))
    if not isinstance(data, dict):
        raise ValueError("completion JSON is not an object")

    raw_topics = data.get("healthTopics", data.get("health_topics"))
    if raw_topics is None:
        raise ValueError("completion JSON has no healthTopics")

    return (
        normalize_topics(raw_topics),
        normalize_intent(data.get("intent")),
        normalize_confidence(data.get("confidence")),
    )


# =============================================================================
# EXTRACTOR
# =============================================================================

class TopicExtractor:
    """
    AI topic extraction guarded by a BudgetGuard.

    The httpx client is injectable (tests use httpx.MockTransport); when not
    given, one is created lazily and closed by aclose().
    """

    def __init__(
        self,
        budget: BudgetGuard,
        api_key: str = "",
        model: str = "openai/gpt-3.5-turbo",
        base_url: str = "https://openrouter.ai/api/v1",
        timeout_seconds: float = 8.0,
        prompt_cost_per_1k: float = 0.0015,
        completion_cost_per_1k: float = 0.002,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.budget = budget
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.prompt_cost_per_1k = prompt_cost_per_1k
        self.completion_cost_per_1k = completion_cost_per_1k
        self._client = client
        self._owns_client = client is None

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def calculate_cost(self, usage: Any) -> float:
        """Upstream-reported cost, else token pricing"""
        if not isinstance(usage, dict):
            return 0.0
        reported = usage.get("cost")
        if _non_negative_number(reported):
            return float(reported)
        prompt_tokens = usage.get("prompt_tokens", 0)
        completion_tokens = usage.get("completion_tokens", 0)
        if not (_non_negative_number(prompt_tokens) and _non_negative_number(completion_tokens)):
            return 0.0
        return (
            prompt_tokens * self.prompt_cost_per_1k / 1000
            + completion_tokens * self.completion_cost_per_1k / 1000
        )

    async def extract_topics(self, query: str) -> ProcessedQuery:
        """
        Topics and intent for a query

        Never raises for upstream trouble; returns a degraded heuristic
        result instead.
        """
        if not self.enabled:
            logger.debug("[TopicExtractor] No API key configured, using keyword heuristic")
            return heuristic_processed_query(query)

        try:
            return await self._call_upstream(query)
        except BudgetExceeded as e:
            logger.warning(f"[TopicExtractor] Skipping AI call: {e.message}")
        except UpstreamTimeout as e:
            logger.warning(f"[TopicExtractor] Upstream timed out: {e.message}")
        except UpstreamError as e:
            logger.warning(f"[TopicExtractor] Upstream failed: {e.message}")
            if e.cost > 0:
                # The call was billed even though the body was unusable
                await self.budget.record(e.cost)

        return heuristic_processed_query(query)

    async def _call_upstream(self, query: str) -> ProcessedQuery:
        if not self.enabled:
            raise UpstreamError("topic extraction API key not configured")

        await self.budget.check()

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f'Analyze this health query: "{query}"'},
            ],
            "max_tokens": 300,
            "temperature": 0.3,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": "Health Search Engine",
        }

        try:
            response = await asyncio.wait_for(
                self._get_client().post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                    timeout=self.timeout_seconds,
                ),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamTimeout(f"no response within {self.timeout_seconds}s") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"transport error: {e}") from e

        if response.status_code >= 400:
            raise UpstreamError(f"upstream returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError("upstream body is not JSON") from e
        if not isinstance(body, dict):
            raise UpstreamError("upstream body is not an object")

        cost = 0.0
        try:
            cost = self.calculate_cost(body.get("usage"))
            topics, intent, confidence = parse_completion(body)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise UpstreamError(f"malformed completion: {e}", cost=cost) from e

        await self.budget.record(cost)
        logger.info(
            f"[TopicExtractor] topics={list(topics)} intent={intent.value} "
            f"cost=${cost:.6f}"
        )

        return ProcessedQuery(
            health_topics=topics,
            intent=intent,
            confidence=confidence,
            cost=cost,
            degraded=False,
        )
