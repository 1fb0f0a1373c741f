import logging
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# ==================== CONFIGURATION ====================
GODADDY_API_URL = "https://api.godaddy.com"
GODADDY_SEARCH_URL = "https://www.godaddy.com/domainsearch/find"
DNS_RESOLVER_URL = "https://dns.google/resolve"
OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_MODEL = "meta-llama/llama-3-8b-instruct"

# Pause between sequential registrar calls (seconds)
DEFAULT_REGISTRAR_DELAY = 0.15
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_NUM_SUGGESTIONS = 5


class RegistrarCredentials(BaseModel):
    api_key: str = ""
    api_secret: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_secret)

    @property
    def authorization(self) -> str:
        return f"sso-key {self.api_key}:{self.api_secret}"


class Settings(BaseModel):
    """Process-wide settings, built once at startup and passed to each service."""

    godaddy: RegistrarCredentials = Field(default_factory=RegistrarCredentials)
    godaddy_api_url: str = GODADDY_API_URL
    dns_resolver_url: str = DNS_RESOLVER_URL
    registrar_delay: float = Field(default=DEFAULT_REGISTRAR_DELAY, ge=0)
    http_timeout: float = Field(default=DEFAULT_HTTP_TIMEOUT, gt=0)

    openrouter_api_key: str = ""
    openrouter_api_url: str = OPENROUTER_API_URL
    openrouter_model: str = DEFAULT_MODEL
    num_suggestions: int = Field(default=DEFAULT_NUM_SUGGESTIONS, ge=1, le=20)

    redis_url: str = "redis://localhost:6379"
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 8000

    @property
    def llm_configured(self) -> bool:
        return bool(self.openrouter_api_key)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        # Load environment variables from .env file
        load_dotenv(env_file)

        origins = os.getenv("ALLOWED_ORIGINS", "*")
        return cls(
            godaddy=RegistrarCredentials(
                api_key=os.getenv("GODADDY_API_KEY", ""),
                api_secret=os.getenv("GODADDY_API_SECRET", ""),
            ),
            godaddy_api_url=os.getenv("GODADDY_API_URL", GODADDY_API_URL),
            dns_resolver_url=os.getenv("DNS_RESOLVER_URL", DNS_RESOLVER_URL),
            registrar_delay=float(os.getenv("REGISTRAR_DELAY_SECONDS", str(DEFAULT_REGISTRAR_DELAY))),
            http_timeout=float(os.getenv("HTTP_TIMEOUT_SECONDS", str(DEFAULT_HTTP_TIMEOUT))),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY", ""),
            openrouter_model=os.getenv("OPENROUTER_MODEL", DEFAULT_MODEL),
            num_suggestions=int(os.getenv("NUM_SUGGESTIONS", str(DEFAULT_NUM_SUGGESTIONS))),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            allowed_origins=[o.strip() for o in origins.split(",") if o.strip()] or ["*"],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("PORT", "8000")),
        )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # httpx logs full request lines; keep credentials out of the log
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def print_startup_banner(settings: Settings, storage_backend: str):
    print(f"Registrar pacing: {settings.registrar_delay:.2f}s between checks")
    print(f"Loaded GoDaddy API Key: {'✅ Yes' if settings.godaddy.api_key else '❌ No'}")
    print(f"Loaded GoDaddy Secret: {'✅ Yes' if settings.godaddy.api_secret else '❌ No'}")
    print(f"Loaded OpenRouter Key: {'✅ Yes' if settings.llm_configured else '❌ No'}")
    print(f"Conversation storage: {storage_backend}")
