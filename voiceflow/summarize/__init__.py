"""Text summarization providers and orchestration."""

from .providers import ClaudeSummaryProvider, OpenAISummaryProvider, SummaryProvider, SummaryResult
from .summarizer import Summarizer

__all__ = [
    "ClaudeSummaryProvider",
    "OpenAISummaryProvider",
    "SummaryProvider",
    "SummaryResult",
    "Summarizer",
]
