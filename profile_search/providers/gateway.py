"""Provider gateway: one rate-limited entry point for search, LLM and enrichment calls.

Provider selection:
  search      configured selection, else first configured of google, bing;
              falls back to the next configured provider on rate limit or
              transient failure
  llm         explicit name, else configured default, else first configured
              in PREFERENCE_ORDER
  enrichment  apollo
"""

import logging

from profile_search.core.config import Settings
from profile_search.core.errors import (
    NotConfiguredError,
    ProviderError,
    RateLimitedError,
    TransientError,
)
from profile_search.core.schemas import Contact, FilterOutcome, QueryExpansion, SearchResult
from profile_search.pipeline.matcher import dedupe_results
from profile_search.providers.base import EnrichmentProvider, SearchProvider
from profile_search.providers.enrichment.apollo import ApolloEnrichmentProvider
from profile_search.providers.llm import PREFERENCE_ORDER, available_providers, get_provider
from profile_search.providers.llm.base import (
    EXPANSION_SYSTEM_PROMPT,
    EXPANSION_TEMPERATURE,
    FILTER_SYSTEM_PROMPT,
    FILTER_TEMPERATURE,
    LLMProvider,
    build_expansion_prompt,
    build_filter_prompt,
    parse_expansion_response,
    parse_filter_response,
)
from profile_search.providers.rate_limit import RateLimiter
from profile_search.providers.search import get_search_provider

logger = logging.getLogger(__name__)

# Search providers tried, in order, when none is selected.
SEARCH_ORDER = ("google", "bing")


class ProviderGateway:
    """Uniform, rate-limited access to every external provider."""

    def __init__(
        self,
        search_providers: list[SearchProvider],
        llm_providers: dict[str, LLMProvider],
        enrichment: EnrichmentProvider | None,
        limiter: RateLimiter,
        *,
        search_selection: str | None = None,
        default_llm: str | None = None,
        models: dict[str, str] | None = None,
    ) -> None:
        self._search = {p.provider_id: p for p in search_providers}
        self._llm_providers = llm_providers
        self._enrichment = enrichment
        self._limiter = limiter
        self._search_selection = search_selection
        self._default_llm = default_llm
        self._models = models or {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderGateway":
        """Build every provider the settings describe."""
        timeout = settings.search.timeout_s
        search_providers = [
            get_search_provider("google", timeout_s=timeout),
            get_search_provider("bing", timeout_s=timeout),
            get_search_provider("fallback"),
        ]
        ai = settings.ai
        llm_providers = {
            name: get_provider(
                name, timeout_s=ai.local_timeout_s if name == "ollama" else ai.timeout_s,
            )
            for name in available_providers()
        }
        enrichment = ApolloEnrichmentProvider(
            base_url=settings.apollo.base_url, timeout_s=settings.apollo.timeout_s,
        )
        names = [p.provider_id for p in search_providers]
        names += [*llm_providers, enrichment.provider_id]
        limits = {
            name: limit for name in names
            if (limit := settings.rate_limit_for(name)) is not None
        }
        return cls(
            search_providers,
            llm_providers,
            enrichment,
            RateLimiter(limits),
            search_selection=settings.search.provider,
            default_llm=settings.ai.default_provider,
            models=settings.ai.models,
        )

    async def close(self) -> None:
        for provider in self._search.values():
            await provider.close()
        if self._enrichment is not None:
            await self._enrichment.close()

    # --- Search ---

    def search_provider_ids(self) -> list[str]:
        """Configured search providers in the order they will be tried."""
        return [p.provider_id for p in self._search_chain()]

    def _search_chain(self) -> list[SearchProvider]:
        selection = self._search_selection
        if selection == "fallback":
            fallback = self._search.get("fallback")
            return [fallback] if fallback is not None else []
        order = list(SEARCH_ORDER)
        if selection in order:
            order.remove(selection)
            order.insert(0, selection)
        return [
            self._search[name] for name in order
            if name in self._search and self._search[name].is_configured()
        ]

    async def search(
        self,
        query: str,
        location_code: str | None = None,
        max_results: int = 10,
    ) -> list[SearchResult]:
        """Run a query through the first provider that answers.

        Raises:
            NotConfiguredError: No search provider is configured.
            RateLimitedError, TransientError: Every configured provider failed;
                the last failure is raised.
        """
        chain = self._search_chain()
        if not chain:
            msg = "No search provider configured"
            raise NotConfiguredError(msg, "search")

        errors: list[ProviderError] = []
        for provider in chain:
            try:
                self._limiter.acquire(provider.provider_id)
                results = await provider.search(query, location_code, max_results)
            except (RateLimitedError, TransientError) as e:
                logger.warning(
                    "Search via %s failed (%s) - trying next provider", provider.provider_id, e,
                )
                errors.append(e)
                continue
            unique = dedupe_results(results)
            logger.debug(
                "Search '%s' via %s: %d results (%d unique)",
                query, provider.provider_id, len(results), len(unique),
            )
            return unique

        raise errors[-1]

    # --- LLM ---

    def default_llm_provider(self) -> str | None:
        """Name of the LLM provider used when none is requested."""
        if self._default_llm:
            provider = self._llm_providers.get(self._default_llm)
            if provider is not None and provider.is_configured():
                return self._default_llm
        for name in PREFERENCE_ORDER:
            provider = self._llm_providers.get(name)
            if provider is not None and provider.is_configured():
                return name
        return None

    def llm_available(self, name: str | None = None) -> bool:
        try:
            self._llm(name)
        except NotConfiguredError:
            return False
        return True

    def _llm(self, name: str | None) -> LLMProvider:
        use_name = name or self.default_llm_provider()
        if use_name is None:
            msg = "No AI provider configured"
            raise NotConfiguredError(msg, "ai")
        provider = self._llm_providers.get(use_name)
        if provider is None:
            msg = f"Unknown AI provider '{use_name}'"
            raise NotConfiguredError(msg, use_name)
        if not provider.is_configured():
            msg = f"AI provider '{use_name}' is not configured"
            raise NotConfiguredError(msg, use_name)
        return provider

    async def expand_query(
        self,
        original: str,
        max_variants: int = 5,
        context: str | None = None,
        location: str | None = None,
        provider: str | None = None,
    ) -> QueryExpansion:
        """Ask an LLM for alternative phrasings of a query."""
        llm = self._llm(provider)
        self._limiter.acquire(llm.provider_id)
        raw = await llm.complete(
            build_expansion_prompt(original, max_variants, context, location),
            system=EXPANSION_SYSTEM_PROMPT,
            model=self._models.get(llm.provider_id),
            temperature=EXPANSION_TEMPERATURE,
        )
        expansion = parse_expansion_response(raw)
        if len(expansion.variants) > max_variants:
            expansion = expansion.model_copy(
                update={"variants": expansion.variants[:max_variants]},
            )
        logger.info(
            "Expanded '%s' into %d variants via %s (confidence %.2f)",
            original, len(expansion.variants), llm.provider_id, expansion.confidence,
        )
        return expansion

    async def filter_results(
        self,
        results: list[SearchResult],
        original_query: str,
        threshold: float = 0.7,
        provider: str | None = None,
    ) -> FilterOutcome:
        """Ask an LLM which results are relevant. Unparseable replies keep everything."""
        if not results:
            return FilterOutcome(kept=[], removed_count=0)
        llm = self._llm(provider)
        self._limiter.acquire(llm.provider_id)
        raw = await llm.complete(
            build_filter_prompt(results, original_query, threshold),
            system=FILTER_SYSTEM_PROMPT,
            model=self._models.get(llm.provider_id),
            temperature=FILTER_TEMPERATURE,
        )
        outcome = parse_filter_response(raw, results)
        logger.info(
            "Filtered %d results via %s: kept %d, removed %d",
            len(results), llm.provider_id, len(outcome.kept), outcome.removed_count,
        )
        return outcome

    # --- Enrichment ---

    def enrichment_available(self) -> bool:
        return self._enrichment is not None and self._enrichment.is_configured()

    async def enrich_contact(
        self,
        name: str,
        company: str | None = None,
        email: str | None = None,
        linkedin_url: str | None = None,
    ) -> Contact | None:
        if self._enrichment is None or not self._enrichment.is_configured():
            msg = "No enrichment provider configured"
            raise NotConfiguredError(msg, "enrichment")
        self._limiter.acquire(self._enrichment.provider_id)
        return await self._enrichment.enrich_contact(name, company, email, linkedin_url)
