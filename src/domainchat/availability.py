import asyncio
import logging
from typing import Any, List, Optional
from urllib.parse import quote

import httpx

from .config import GODADDY_SEARCH_URL, Settings
from .errors import RegistrarError
from .models import AvailabilityStatus, DomainStatusRecord

logger = logging.getLogger(__name__)

# GoDaddy reports prices in micro-units of the currency
PRICE_MICRO_UNITS = 1_000_000
DEFAULT_CURRENCY = "USD"

FALLBACK_SUMMARY = "Click to check availability on GoDaddy"

AVAILABLE_WORDS = {"available", "inactive", "undelegated", "unregistered", "free"}
TAKEN_WORDS = {"taken", "active", "registered", "unavailable", "claimed", "reserved"}


# ==================== STATUS NORMALIZER ====================
def normalize_status(value: Any) -> AvailabilityStatus:
    """Map an upstream availability value (flag or vocabulary word) onto the shared status."""
    if isinstance(value, bool):
        return AvailabilityStatus.AVAILABLE if value else AvailabilityStatus.TAKEN
    if isinstance(value, str):
        word = value.strip().lower()
        if word in AVAILABLE_WORDS:
            return AvailabilityStatus.AVAILABLE
        if word in TAKEN_WORDS:
            return AvailabilityStatus.TAKEN
    return AvailabilityStatus.UNKNOWN


def register_url(domain: str) -> str:
    return f"{GODADDY_SEARCH_URL}?domainToCheck={quote(domain, safe='')}"


def fallback_status(domain: str) -> DomainStatusRecord:
    """Record used when no upstream could tell us anything about the domain."""
    return DomainStatusRecord(
        domain=domain,
        status=AvailabilityStatus.UNKNOWN,
        register_url=register_url(domain),
        summary=FALLBACK_SUMMARY,
        currency=DEFAULT_CURRENCY,
    )


def _clean(domain: str) -> str:
    return domain.strip().lower()


# ==================== DNS FALLBACK CHECKER ====================
class DNSFallbackChecker:
    """Guesses registration from A records over DNS-over-HTTPS.

    An answer means the name resolves and is almost certainly registered.
    No answer is reported as available even though parked names without an
    A record will be misread.
    """

    def __init__(self, resolver_url: str):
        self.resolver_url = resolver_url

    async def check_domain(self, client: httpx.AsyncClient, domain: str) -> DomainStatusRecord:
        try:
            response = await client.get(
                self.resolver_url,
                params={"name": _clean(domain), "type": "A"},
                headers={"Accept": "application/json"},
            )
            if not response.is_success:
                logger.warning(f"DNS resolver returned {response.status_code} for {domain}")
                return fallback_status(domain)

            data = response.json()
            has_records = isinstance(data, dict) and bool(data.get("Answer"))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"DNS check failed for {domain}: {e}")
            return fallback_status(domain)

        status = normalize_status(not has_records)
        return DomainStatusRecord(
            domain=domain,
            status=status,
            register_url=register_url(domain),
            summary=(
                "Domain appears to be registered (has DNS records)"
                if has_records
                else "Domain appears available (no DNS records found)"
            ),
            currency=DEFAULT_CURRENCY,
        )

    async def check_domains(self, client: httpx.AsyncClient, domains: List[str]) -> List[DomainStatusRecord]:
        logger.info(f"DNS-based availability check for {len(domains)} domains")
        results = []
        for domain in domains:
            results.append(await self.check_domain(client, domain))
        return results


# ==================== REGISTRAR CHECKER ====================
class RegistrarChecker:
    name = "godaddy"

    def __init__(self, settings: Settings):
        self.credentials = settings.godaddy
        self.base_url = settings.godaddy_api_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return self.credentials.configured

    def _headers(self) -> dict:
        return {
            "Authorization": self.credentials.authorization,
            "Accept": "application/json",
        }

    async def check_domain(self, client: httpx.AsyncClient, domain: str) -> DomainStatusRecord:
        """Check one domain; raises RegistrarError on a non-2xx answer or an unreadable reply."""
        response = await client.get(
            f"{self.base_url}/v1/domains/available",
            params={"domain": _clean(domain)},
            headers=self._headers(),
        )
        if not response.is_success:
            raise RegistrarError(domain, response.status_code, response.text[:200])

        data = response.json()
        if not isinstance(data, dict) or not isinstance(data.get("available"), bool):
            raise RegistrarError(domain, response.status_code, "reply has no availability flag")
        status = normalize_status(data["available"])

        price = data.get("price")
        if price is not None:
            price = float(price) / PRICE_MICRO_UNITS

        if status == AvailabilityStatus.AVAILABLE:
            summary = "Available for registration on GoDaddy"
        else:
            summary = "Already registered"

        return DomainStatusRecord(
            domain=domain,
            status=status,
            price=price,
            currency=data.get("currency") or DEFAULT_CURRENCY,
            period=data.get("period") or 1,
            register_url=register_url(domain),
            summary=summary,
        )

    async def ping(self, client: httpx.AsyncClient) -> dict:
        """Connectivity probe against a domain that is always registered."""
        if not self.configured:
            return {"status": "not_configured", "provider": self.name, "message": "Missing API credentials"}
        try:
            response = await client.get(
                f"{self.base_url}/v1/domains/available",
                params={"domain": "example.com"},
                headers=self._headers(),
            )
            if response.status_code == 200:
                return {"status": "success", "provider": self.name, "response": response.json()}
            else:
                return {"status": "error", "provider": self.name, "message": response.text}
        except httpx.HTTPError as e:
            return {"status": "error", "provider": self.name, "message": str(e)}


# ==================== AVAILABILITY RESOLVER ====================
class AvailabilityResolver:
    """Resolves a batch of domains to status records: registrar, then DNS, then a static link.

    ``resolve`` never raises and always returns one record per input, in
    input order.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.registrar = RegistrarChecker(settings)
        self.dns = DNSFallbackChecker(settings.dns_resolver_url)
        self.delay = settings.registrar_delay
        self._client = client

    async def resolve(self, domains: List[str]) -> List[DomainStatusRecord]:
        if not domains:
            return []
        try:
            if self._client is not None:
                return await self._resolve_with(self._client, domains)
            async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
                return await self._resolve_with(client, domains)
        except Exception as e:
            logger.error(f"All domain checking methods failed: {e}")
            return [fallback_status(d) for d in domains]

    async def _resolve_with(self, client: httpx.AsyncClient, domains: List[str]) -> List[DomainStatusRecord]:
        if self.registrar.configured:
            logger.info("Using GoDaddy API with credentials")
            try:
                return await self._check_with_registrar(client, domains)
            except Exception as e:
                logger.error(f"GoDaddy batch check failed, using DNS for all domains: {e}")

        return await self.dns.check_domains(client, domains)

    async def _check_with_registrar(self, client: httpx.AsyncClient, domains: List[str]) -> List[DomainStatusRecord]:
        logger.info(f"GoDaddy API: checking availability for {len(domains)} domains")
        results = []

        for i, domain in enumerate(domains):
            try:
                record = await self.registrar.check_domain(client, domain)
                logger.info(f"{domain}: {record.status.value}")
            except RegistrarError as e:
                logger.warning(f"GoDaddy API {e.status_code} for {domain} ({e.body}), using DNS fallback")
                record = await self._dns_fallback(client, domain)
            except Exception as e:
                logger.warning(f"Error checking {domain} with GoDaddy, using DNS fallback: {e}")
                record = await self._dns_fallback(client, domain)
            results.append(record)

            # Pacing between sequential registrar calls
            if i < len(domains) - 1 and self.delay > 0:
                await asyncio.sleep(self.delay)

        return results

    async def _dns_fallback(self, client: httpx.AsyncClient, domain: str) -> DomainStatusRecord:
        # Failures stay scoped to this one domain
        try:
            return await self.dns.check_domain(client, domain)
        except Exception as e:
            logger.error(f"DNS fallback failed for {domain}: {e}")
            return fallback_status(domain)
