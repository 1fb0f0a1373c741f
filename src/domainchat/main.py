from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging
import uuid

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
import httpx

from . import __version__
from .agent import DomainChatAgent
from .availability import AvailabilityResolver
from .config import Settings, configure_logging, print_startup_banner
from .errors import LLMError, StorageError
from .llm import SuggestionGenerator
from .models import (
    CheckDomainRequest,
    CreateConversationRequest,
    CreateMessageRequest,
    SuggestDomainsRequest,
)
from .storage import BaseConversationStore, create_store

logger = logging.getLogger(__name__)


# ==================== APP FACTORY ====================
def create_app(
    settings: Optional[Settings] = None,
    store: Optional[BaseConversationStore] = None,
    resolver: Optional[AvailabilityResolver] = None,
    generator: Optional[SuggestionGenerator] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.store is None:
            app.state.store = create_store(settings.redis_url)
            app.state.agent.store = app.state.store
        print_startup_banner(settings, app.state.store.backend)
        yield

    app = FastAPI(
        title="Domain Chat API",
        description="Chat with an AI branding assistant and check domain availability in real time",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware for the chat frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.store = store
    app.state.resolver = resolver or AvailabilityResolver(settings)
    app.state.generator = generator or SuggestionGenerator(settings)
    app.state.agent = DomainChatAgent(app.state.generator, app.state.resolver, store)

    register_routes(app)
    return app


# ==================== DEPENDENCIES ====================
async def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Opaque user identity forwarded by the auth proxy in front of the API"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()


def get_store(request: Request) -> BaseConversationStore:
    store = request.app.state.store
    if store is None:
        raise HTTPException(status_code=503, detail="Conversation storage is not ready")
    return store


def _owned_conversation(store: BaseConversationStore, conversation_id: str, user_id: str):
    conversation = store.get_conversation(conversation_id)
    if conversation is None or conversation.user_id != user_id:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


# ==================== API ENDPOINTS ====================
def register_routes(app: FastAPI):

    @app.get("/api/health")
    async def health_check(request: Request):
        """
        Health check endpoint - **NOT authenticated**

        **Returns**: API status, version, and which upstreams are configured
        """
        state = request.app.state
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc),
            "version": __version__,
            "providers": {
                "godaddy": state.settings.godaddy.configured,
                "dns_fallback": True,
                "llm": state.generator.configured,
            },
            "storage": state.store.backend if state.store is not None else "starting",
        }

    @app.get("/api/test-registrar")
    async def test_registrar_connection(request: Request, user_id: str = Depends(get_current_user)):
        """
        Test GoDaddy API connection

        **Authentication**: API keys from environment variables
        **Returns**: success / error / not_configured
        """
        resolver = request.app.state.resolver
        async with httpx.AsyncClient(timeout=request.app.state.settings.http_timeout) as client:
            return await resolver.registrar.ping(client)

    @app.post("/api/check-domain")
    async def check_domain(body: CheckDomainRequest, request: Request, user_id: str = Depends(get_current_user)):
        """
        Check availability for one or more domains

        Tries GoDaddy when credentials are configured, then a DNS lookup, and
        finally returns an ``unknown`` status with a GoDaddy search link.
        Results are in the same order as the input and never fail the request.
        """
        domains = body.all_domains()
        if not domains:
            raise HTTPException(status_code=400, detail="Missing or invalid domain.")

        records = await request.app.state.resolver.resolve(domains)
        return {
            "results": [r.model_dump(by_alias=True, mode="json") for r in records],
            "request_id": str(uuid.uuid4()),
            "timestamp": datetime.now(timezone.utc),
        }

    @app.post("/api/suggest-domains")
    async def suggest_domains(
        body: SuggestDomainsRequest,
        request: Request,
        user_id: str = Depends(get_current_user),
        store: BaseConversationStore = Depends(get_store),
    ):
        """
        **Main Endpoint**: one chat turn with domain suggestions

        1. Loads the last messages of the conversation as context
        2. Asks the LLM for a reply and domain ideas
        3. Checks availability of every suggested domain
        4. Stores both messages and the suggestions
        """
        if not body.description or not body.description.strip():
            raise HTTPException(status_code=400, detail="Missing or invalid description.")
        if not body.conversation_id:
            raise HTTPException(status_code=400, detail="Missing conversationId.")

        try:
            _owned_conversation(store, body.conversation_id, user_id)
            return await request.app.state.agent.handle_turn(
                user_id, body.conversation_id, body.description.strip()
            )
        except LLMError as e:
            logger.error(f"LLM failure in suggest-domains workflow: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to generate domain suggestions: {e}")
        except StorageError as e:
            logger.error(f"Storage failure in suggest-domains workflow: {e}")
            raise HTTPException(status_code=500, detail="Failed to store conversation.")

    @app.get("/api/conversations")
    async def list_conversations(user_id: str = Depends(get_current_user), store: BaseConversationStore = Depends(get_store)):
        """List the caller's conversations, newest first"""
        try:
            conversations = store.list_conversations(user_id)
        except StorageError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {"conversations": [c.model_dump(mode="json") for c in conversations]}

    @app.post("/api/conversations")
    async def create_conversation(
        body: CreateConversationRequest,
        user_id: str = Depends(get_current_user),
        store: BaseConversationStore = Depends(get_store),
    ):
        """Create a conversation for the caller"""
        try:
            store.upsert_user(user_id)
            conversation = store.create_conversation(user_id, body.name)
        except StorageError as e:
            logger.error(f"Failed to create conversation: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return {"conversation": conversation.model_dump(mode="json")}

    @app.get("/api/messages")
    async def list_messages(
        conversationId: Optional[str] = None,
        user_id: str = Depends(get_current_user),
        store: BaseConversationStore = Depends(get_store),
    ):
        """Messages of one conversation, oldest first"""
        if not conversationId:
            raise HTTPException(status_code=400, detail="Missing conversationId")
        try:
            _owned_conversation(store, conversationId, user_id)
            messages = store.list_messages(conversationId)
        except StorageError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {"messages": [m.model_dump(mode="json") for m in messages]}

    @app.get("/api/domain-suggestions")
    async def list_domain_suggestions(
        conversationId: Optional[str] = None,
        user_id: str = Depends(get_current_user),
        store: BaseConversationStore = Depends(get_store),
    ):
        """Domains suggested so far in one conversation, with their availability"""
        if not conversationId:
            raise HTTPException(status_code=400, detail="Missing conversationId")
        try:
            _owned_conversation(store, conversationId, user_id)
            suggestions = store.list_domain_suggestions(conversationId)
        except StorageError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {"suggestions": [s.model_dump(mode="json") for s in suggestions]}

    @app.post("/api/messages")
    async def create_message(
        body: CreateMessageRequest,
        user_id: str = Depends(get_current_user),
        store: BaseConversationStore = Depends(get_store),
    ):
        """Append a message to one of the caller's conversations"""
        if not body.conversation_id or not body.role or not body.content:
            raise HTTPException(status_code=400, detail="Missing fields")
        try:
            _owned_conversation(store, body.conversation_id, user_id)
            message = store.add_message(body.conversation_id, body.role, body.content)
        except StorageError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {"message": message.model_dump(mode="json")}


settings = Settings.from_env()
configure_logging(settings.log_level)
app = create_app(settings)


def run():
    import uvicorn
    uvicorn.run(
        "domainchat.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=False,
    )


# Run the app
if __name__ == "__main__":
    run()
