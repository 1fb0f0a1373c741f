import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .config import Settings
from .errors import LLMError
from .models import ChatMessage, ConversationalResponse, DomainSuggestion, Intent

logger = logging.getLogger(__name__)

SUGGESTION_LINE = re.compile(r"^(?:\d+\.\s*)?([\w-]+\.[a-z]{2,})\s*-\s*(.+)$", re.IGNORECASE)
CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)

HISTORY_LIMIT = 10

SYSTEM_PROMPT = """You are a friendly, world-class branding assistant helping people find domain names.
Talk with the user about their project. When you know enough about it, suggest {n} unique, catchy and
brandable domain names: short, memorable, easy to spell, avoiding generic or overused words.
If the request is too vague, ask a clarifying question and suggest nothing yet.

Respond ONLY with a JSON object, no extra text:
{{
  "reply": "your conversational answer to the user",
  "intent": "domain_request | project_discussion | refinement | general",
  "needsMoreInfo": false,
  "domains": [
    {{"domain": "example.com", "explanation": "one sentence on why it fits",
      "relevanceScore": 8, "category": "brandable", "reasoning": "how it matches the user's needs"}}
  ]
}}"""


def _build_one_shot_prompt(description: str, n: int) -> str:
    lines = "\n".join(f"{i + 1}. domain.com - explanation" for i in range(n))
    return (
        f"You are a world-class creative branding assistant. Your job is to suggest {n} unique, catchy, "
        "and brandable .com domain names for the following project or idea. Avoid generic or overused "
        "words, and make sure each name is short, memorable, and easy to spell. For each, provide a "
        "one-sentence explanation of why it fits. Respond ONLY in this format (no extra text):\n"
        f"{lines}\n\nProject: {description}"
    )


# ==================== RESPONSE PARSING ====================
def parse_suggestion_lines(text: str) -> List[DomainSuggestion]:
    """Parse ``N. domain.tld - explanation`` lines, skipping anything else."""
    suggestions = []
    for line in text.splitlines():
        line = line.strip().strip("*").strip()
        if not line:
            continue
        match = SUGGESTION_LINE.match(line)
        if match:
            suggestions.append(DomainSuggestion(domain=match.group(1), explanation=match.group(2).strip()))
    return suggestions


def _extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    candidates = [m.group(1) for m in CODE_FENCE.finditer(text)]
    candidates.append(text)

    for candidate in candidates:
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start == -1 or end <= start:
            continue
        try:
            data = json.loads(candidate[start:end + 1])
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def _coerce_intent(value: Any) -> Intent:
    try:
        return Intent(str(value).strip().lower())
    except ValueError:
        return Intent.GENERAL


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _coerce_score(value: Any) -> Optional[float]:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    return max(1.0, min(score, 10.0))


def _suggestions_from_json(items: Any) -> List[DomainSuggestion]:
    suggestions = []
    if not isinstance(items, list):
        return suggestions
    for item in items:
        if isinstance(item, str):
            item = {"domain": item}
        if not isinstance(item, dict) or not item.get("domain"):
            continue
        suggestions.append(DomainSuggestion(
            domain=str(item["domain"]),
            explanation=str(item.get("explanation") or ""),
            relevance_score=_coerce_score(item.get("relevanceScore")),
            category=str(item["category"]) if item.get("category") else None,
            reasoning=str(item["reasoning"]) if item.get("reasoning") else None,
        ))
    return suggestions


def clean_suggestions(suggestions: Sequence[DomainSuggestion], limit: int) -> List[DomainSuggestion]:
    """Lowercase, drop malformed and duplicate domains, keep the first ``limit``."""
    seen = set()
    cleaned = []
    for s in suggestions:
        domain = s.domain.strip().lower().rstrip(".")
        if "." not in domain or " " in domain or domain in seen:
            continue
        seen.add(domain)
        cleaned.append(s.model_copy(update={"domain": domain}))
    return cleaned[:limit]


def parse_conversational_response(text: str, limit: int) -> ConversationalResponse:
    """Turn raw model output into a reply, degrading from JSON to line format to plain text."""
    data = _extract_json_object(text)
    if data is not None and ("reply" in data or "domains" in data):
        suggestions = clean_suggestions(_suggestions_from_json(data.get("domains")), limit)
        reply = str(data.get("reply") or "").strip()
        if not reply:
            reply = "Here are some domain ideas for you:" if suggestions else "Could you tell me more about your project?"
        return ConversationalResponse(
            assistant_reply=reply,
            domain_suggestions=suggestions,
            intent=_coerce_intent(data.get("intent")),
            needs_more_info=_coerce_flag(data.get("needsMoreInfo")),
        )

    suggestions = clean_suggestions(parse_suggestion_lines(text), limit)
    if suggestions:
        logger.warning("LLM output was not JSON, parsed numbered suggestion lines instead")
        reply_lines = [l for l in text.splitlines() if l.strip() and not SUGGESTION_LINE.match(l.strip().strip("*").strip())]
        reply = "\n".join(reply_lines).strip() or "Here are some domain ideas for you:"
        return ConversationalResponse(
            assistant_reply=reply,
            domain_suggestions=suggestions,
            intent=Intent.DOMAIN_REQUEST,
            needs_more_info=False,
        )

    logger.warning("LLM output had no parsable suggestions, returning it as a plain reply")
    return ConversationalResponse(
        assistant_reply=text.strip() or "Sorry, I couldn't come up with anything. Could you describe your project again?",
        intent=Intent.GENERAL,
        needs_more_info=True,
    )


# ==================== SUGGESTION GENERATOR ====================
class SuggestionGenerator:
    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.api_key = settings.openrouter_api_key
        self.api_url = settings.openrouter_api_url
        self.model = settings.openrouter_model
        self.num_suggestions = settings.num_suggestions
        self.timeout = settings.http_timeout
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _complete(self, messages: List[Dict[str, str]]) -> str:
        if not self.configured:
            raise LLMError("OpenRouter API key is not configured")

        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": 1024,
            "temperature": 0.9,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            if self._client is not None:
                response = await self._client.post(self.api_url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=max(self.timeout, 30.0)) as client:
                    response = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise LLMError(f"LLM request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"LLM API error {response.status_code}: {response.text[:200]}")
            raise LLMError(f"LLM API error {response.status_code}")

        try:
            data = response.json()
            text = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Unexpected LLM response shape: {e}") from e

        logger.debug(f"LLM raw output: {text}")
        return text

    async def get_domain_suggestions(self, description: str) -> List[DomainSuggestion]:
        """One-shot suggestions for a project description, without conversation context."""
        text = await self._complete([
            {"role": "system", "content": "You are a creative domain name generator."},
            {"role": "user", "content": _build_one_shot_prompt(description, self.num_suggestions)},
        ])
        return clean_suggestions(parse_suggestion_lines(text), self.num_suggestions)

    async def get_conversational_response(
        self, description: str, history: Sequence[ChatMessage] = ()
    ) -> ConversationalResponse:
        messages = [{"role": "system", "content": SYSTEM_PROMPT.format(n=self.num_suggestions)}]
        for message in list(history)[-HISTORY_LIMIT:]:
            messages.append({"role": message.role.value, "content": message.content})
        messages.append({"role": "user", "content": description})

        text = await self._complete(messages)
        return parse_conversational_response(text, self.num_suggestions)
