"""
Summarization orchestration.

Picks a provider for each request: ``single`` uses the first available
provider, ``cascade`` tries each available provider in order until one
succeeds.
"""

import logging
from typing import List, Optional

from .providers import SummaryProvider, SummaryResult

logger = logging.getLogger(__name__)

STRATEGIES = ("single", "cascade")


class Summarizer:
    """Runs summaries across one or more providers."""

    def __init__(self, providers: List[SummaryProvider]):
        self.providers = list(providers)

    def available_providers(self) -> List[SummaryProvider]:
        return [p for p in self.providers if p.is_available()]

    async def summarize(
        self,
        text: str,
        system_prompt: Optional[str] = None,
        strategy: str = "single"
    ) -> SummaryResult:
        """
        Summarize text.

        Args:
            text: Text to summarize
            system_prompt: Prompt built from the summarize settings
            strategy: 'single' or 'cascade'

        Returns:
            The successful SummaryResult, or the last failed one.

        Raises:
            ValueError: If text is blank or the strategy is unknown.
        """
        if not text.strip():
            raise ValueError("Text to summarize cannot be empty")
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy '{strategy}'. Choose one of: {', '.join(STRATEGIES)}")

        providers = self.available_providers()
        if not providers:
            logger.warning("No providers available for summarization")
            return SummaryResult(
                input_text=text,
                summary="",
                provider="none",
                processing_time=0.0,
                error="No summary provider available. Add an OpenAI or Anthropic API key."
            )

        if strategy == "single":
            providers = providers[:1]

        result = None
        for provider in providers:
            result = await provider.summarize(text, system_prompt)
            if result.ok:
                logger.info(f"Summary by {provider.name} in {result.processing_time:.2f}s")
                return result
            logger.info(f"{provider.name} failed, trying next provider")
        return result

    def add_provider(self, provider: SummaryProvider) -> None:
        if provider not in self.providers:
            self.providers.append(provider)
