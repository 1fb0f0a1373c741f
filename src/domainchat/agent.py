import logging
from typing import Any, Dict, List

from .availability import AvailabilityResolver
from .llm import HISTORY_LIMIT, SuggestionGenerator
from .models import (
    AvailabilityStatus,
    DomainWithStatus,
    Intent,
    MessageRole,
    StoredSuggestion,
)
from .storage import BaseConversationStore

logger = logging.getLogger(__name__)

# Rough per-turn estimate covering the LLM call and availability lookups
TOKENS_PER_TURN = 1000
TOKEN_USAGE_CALL_TYPE = "agentic_domain_suggestion_with_availability"
CONVERSATION_NAME_LENGTH = 50


def conversation_name_from(description: str) -> str:
    if len(description) > CONVERSATION_NAME_LENGTH:
        return description[:CONVERSATION_NAME_LENGTH] + "..."
    return description


class DomainChatAgent:
    """Runs one chat turn: history, LLM reply, availability check, persistence."""

    def __init__(
        self,
        generator: SuggestionGenerator,
        resolver: AvailabilityResolver,
        store: BaseConversationStore,
    ):
        self.generator = generator
        self.resolver = resolver
        self.store = store

    async def handle_turn(self, user_id: str, conversation_id: str, description: str) -> Dict[str, Any]:
        logger.info(f"Starting LLM domain generation for conversation {conversation_id}")

        history = self.store.list_messages(conversation_id, limit=HISTORY_LIMIT)
        user_message = self.store.add_message(conversation_id, MessageRole.USER, description)

        response = await self.generator.get_conversational_response(description, history)
        if response.intent == Intent.DOMAIN_REQUEST and not response.domain_suggestions:
            # Asked for names but none came back: retry once with the plain list prompt
            logger.warning("Conversational reply had no domains for a domain request, using one-shot prompt")
            suggestions = await self.generator.get_domain_suggestions(description)
            response = response.model_copy(update={"domain_suggestions": suggestions})
        logger.info(f"Generated {len(response.domain_suggestions)} domain suggestions (intent={response.intent.value})")

        domains_with_status: List[DomainWithStatus] = []
        if response.domain_suggestions:
            records = await self.resolver.resolve([s.domain for s in response.domain_suggestions])
            # Records come back in the same order as the suggestions
            domains_with_status = [
                DomainWithStatus.merge(suggestion, records[i] if i < len(records) else None)
                for i, suggestion in enumerate(response.domain_suggestions)
            ]
            logger.info(f"Availability check complete for {len(domains_with_status)} domains")

        assistant_message = self.store.add_message(conversation_id, MessageRole.ASSISTANT, response.assistant_reply)

        if domains_with_status:
            self.store.add_domain_suggestions(
                StoredSuggestion(
                    conversation_id=conversation_id,
                    user_id=user_id,
                    domain=d.domain,
                    explanation=d.explanation,
                    available=d.status == AvailabilityStatus.AVAILABLE,
                )
                for d in domains_with_status
            )
            self.store.record_token_usage(user_id, TOKENS_PER_TURN, TOKEN_USAGE_CALL_TYPE)

        if response.intent in (Intent.DOMAIN_REQUEST, Intent.PROJECT_DISCUSSION):
            self.store.rename_conversation(conversation_id, conversation_name_from(description))

        return {
            "assistantReply": response.assistant_reply,
            "domainSuggestions": [d.model_dump(by_alias=True, mode="json") for d in domains_with_status],
            "intent": response.intent.value,
            "needsMoreInfo": response.needs_more_info,
            "userMessage": user_message.model_dump(mode="json"),
            "assistantMessage": assistant_message.model_dump(mode="json"),
            "agenticWorkflowComplete": True,
        }
