import logging
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

import redis

from .errors import StorageError
from .models import ChatMessage, Conversation, MessageRole, StoredSuggestion, TokenUsage

logger = logging.getLogger(__name__)


def _redis_host(redis_url: str) -> str:
    return redis_url.split("@")[1] if "@" in redis_url else "localhost"


# Redis client with better error handling
def get_redis_client(redis_url: str):
    """Connected client for ``redis_url``, or None when Redis can't be used."""
    options = dict(
        decode_responses=True,
        socket_timeout=5,
        socket_connect_timeout=5,
        retry_on_timeout=True,
    )
    if redis_url.startswith("rediss://"):
        options.update(ssl_cert_reqs=None, health_check_interval=30)

    try:
        client = redis.from_url(redis_url, **options)
        client.ping()
    except redis.AuthenticationError as e:
        logger.error(f"Redis authentication failed for {_redis_host(redis_url)}: {e}")
        print(f"❌ Redis authentication failed: {e}")
        print("🔧 Check your REDIS_URL and token")
        return None
    except redis.ConnectionError as e:
        logger.error(f"Redis connection to {_redis_host(redis_url)} failed: {e}")
        print(f"❌ Redis connection failed: {e}")
        print("🔄 Storing conversations in memory (Redis unavailable)")
        return None
    except (redis.RedisError, ValueError) as e:
        logger.error(f"Redis error for {_redis_host(redis_url)}: {e}")
        print(f"❌ Redis error: {e} - storing conversations in memory")
        return None

    logger.info(f"Redis connected: {_redis_host(redis_url)}")
    print(f"✅ Redis connected successfully to: {_redis_host(redis_url)}")
    return client


# Base store class
class BaseConversationStore:
    backend = "base"

    def upsert_user(self, user_id: str):
        raise NotImplementedError

    def create_conversation(self, user_id: str, name: Optional[str] = None) -> Conversation:
        raise NotImplementedError

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        raise NotImplementedError

    def list_conversations(self, user_id: str) -> List[Conversation]:
        """Conversations owned by ``user_id``, newest first."""
        raise NotImplementedError

    def rename_conversation(self, conversation_id: str, name: str) -> Optional[Conversation]:
        raise NotImplementedError

    def add_message(self, conversation_id: str, role: MessageRole, content: str) -> ChatMessage:
        raise NotImplementedError

    def list_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        """Messages oldest first; ``limit`` keeps only the most recent ones."""
        raise NotImplementedError

    def add_domain_suggestions(self, suggestions: Iterable[StoredSuggestion]) -> int:
        raise NotImplementedError

    def list_domain_suggestions(self, conversation_id: str) -> List[StoredSuggestion]:
        raise NotImplementedError

    def record_token_usage(self, user_id: str, tokens_used: int, api_call_type: str) -> TokenUsage:
        raise NotImplementedError


# Redis-backed store
class RedisConversationStore(BaseConversationStore):
    backend = "redis"

    def __init__(self, client, prefix: str = "domainchat"):
        self.client = client
        self.prefix = prefix

    def _key(self, *parts: str) -> str:
        return ":".join((self.prefix,) + parts)

    def upsert_user(self, user_id: str):
        try:
            self.client.sadd(self._key("users"), user_id)
        except redis.RedisError as e:
            raise StorageError(f"Failed to upsert user: {e}") from e

    def _save_conversation(self, conversation: Conversation):
        self.client.set(self._key("conversation", conversation.id), conversation.model_dump_json())

    def create_conversation(self, user_id: str, name: Optional[str] = None) -> Conversation:
        conversation = Conversation(user_id=user_id, name=name)
        try:
            self._save_conversation(conversation)
            self.client.zadd(
                self._key("user", user_id, "conversations"),
                {conversation.id: conversation.created_at.timestamp()},
            )
        except redis.RedisError as e:
            raise StorageError(f"Failed to create conversation: {e}") from e
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        try:
            raw = self.client.get(self._key("conversation", conversation_id))
        except redis.RedisError as e:
            raise StorageError(f"Failed to load conversation: {e}") from e
        if not raw:
            return None
        return Conversation.model_validate_json(raw)

    def list_conversations(self, user_id: str) -> List[Conversation]:
        try:
            ids = self.client.zrevrange(self._key("user", user_id, "conversations"), 0, -1)
        except redis.RedisError as e:
            raise StorageError(f"Failed to list conversations: {e}") from e
        conversations = []
        for conversation_id in ids:
            conversation = self.get_conversation(conversation_id)
            if conversation is not None:
                conversations.append(conversation)
        return conversations

    def rename_conversation(self, conversation_id: str, name: str) -> Optional[Conversation]:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return None
        conversation.name = name
        try:
            self._save_conversation(conversation)
        except redis.RedisError as e:
            raise StorageError(f"Failed to rename conversation: {e}") from e
        return conversation

    def add_message(self, conversation_id: str, role: MessageRole, content: str) -> ChatMessage:
        message = ChatMessage(conversation_id=conversation_id, role=role, content=content)
        try:
            self.client.rpush(self._key("conversation", conversation_id, "messages"), message.model_dump_json())
        except redis.RedisError as e:
            raise StorageError(f"Failed to store message: {e}") from e
        return message

    def list_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        start = -limit if limit else 0
        try:
            raw_messages = self.client.lrange(self._key("conversation", conversation_id, "messages"), start, -1)
        except redis.RedisError as e:
            raise StorageError(f"Failed to load messages: {e}") from e
        return [ChatMessage.model_validate_json(raw) for raw in raw_messages]

    def add_domain_suggestions(self, suggestions: Iterable[StoredSuggestion]) -> int:
        count = 0
        try:
            for suggestion in suggestions:
                self.client.rpush(
                    self._key("conversation", suggestion.conversation_id, "suggestions"),
                    suggestion.model_dump_json(),
                )
                count += 1
        except redis.RedisError as e:
            raise StorageError(f"Failed to store domain suggestions: {e}") from e
        return count

    def list_domain_suggestions(self, conversation_id: str) -> List[StoredSuggestion]:
        try:
            raw_rows = self.client.lrange(self._key("conversation", conversation_id, "suggestions"), 0, -1)
        except redis.RedisError as e:
            raise StorageError(f"Failed to load domain suggestions: {e}") from e
        return [StoredSuggestion.model_validate_json(raw) for raw in raw_rows]

    def record_token_usage(self, user_id: str, tokens_used: int, api_call_type: str) -> TokenUsage:
        usage = TokenUsage(user_id=user_id, tokens_used=tokens_used, api_call_type=api_call_type)
        try:
            self.client.rpush(self._key("user", user_id, "token_usage"), usage.model_dump_json())
        except redis.RedisError as e:
            raise StorageError(f"Failed to record token usage: {e}") from e
        return usage


# In-process store, used when Redis is unavailable
class InMemoryConversationStore(BaseConversationStore):
    backend = "memory"

    def __init__(self):
        self.users = set()
        self.conversations: Dict[str, Conversation] = {}
        self.messages: Dict[str, List[ChatMessage]] = defaultdict(list)
        self.suggestions: Dict[str, List[StoredSuggestion]] = defaultdict(list)
        self.token_usage: List[TokenUsage] = []
        self.lock = threading.Lock()

    def upsert_user(self, user_id: str):
        with self.lock:
            self.users.add(user_id)

    def create_conversation(self, user_id: str, name: Optional[str] = None) -> Conversation:
        conversation = Conversation(user_id=user_id, name=name)
        with self.lock:
            self.conversations[conversation.id] = conversation
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self.lock:
            conversation = self.conversations.get(conversation_id)
            return conversation.model_copy() if conversation else None

    def list_conversations(self, user_id: str) -> List[Conversation]:
        with self.lock:
            # Newest insertions first so equal timestamps keep creation order
            owned = [c for c in reversed(list(self.conversations.values())) if c.user_id == user_id]
        return [c.model_copy() for c in sorted(owned, key=lambda c: c.created_at, reverse=True)]

    def rename_conversation(self, conversation_id: str, name: str) -> Optional[Conversation]:
        with self.lock:
            conversation = self.conversations.get(conversation_id)
            if conversation is None:
                return None
            conversation.name = name
            return conversation.model_copy()

    def add_message(self, conversation_id: str, role: MessageRole, content: str) -> ChatMessage:
        message = ChatMessage(conversation_id=conversation_id, role=role, content=content)
        with self.lock:
            self.messages[conversation_id].append(message)
        return message

    def list_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        with self.lock:
            messages = list(self.messages.get(conversation_id, []))
        return messages[-limit:] if limit else messages

    def add_domain_suggestions(self, suggestions: Iterable[StoredSuggestion]) -> int:
        rows = list(suggestions)
        with self.lock:
            for row in rows:
                self.suggestions[row.conversation_id].append(row)
        return len(rows)

    def list_domain_suggestions(self, conversation_id: str) -> List[StoredSuggestion]:
        with self.lock:
            return list(self.suggestions.get(conversation_id, []))

    def record_token_usage(self, user_id: str, tokens_used: int, api_call_type: str) -> TokenUsage:
        usage = TokenUsage(user_id=user_id, tokens_used=tokens_used, api_call_type=api_call_type)
        with self.lock:
            self.token_usage.append(usage)
        return usage


def create_store(redis_url: str) -> BaseConversationStore:
    client = get_redis_client(redis_url)
    if client is None:
        logger.warning("Redis unavailable, conversations will not survive a restart")
        return InMemoryConversationStore()
    return RedisConversationStore(client)
