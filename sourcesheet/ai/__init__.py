"""Vision providers, corpus client and the identification pipeline."""

from .client import CorpusClient, CorpusClientError, CorpusText, SearchHit
from .identification import IdentificationPipeline
from .providers import (
    CoordinateConvention,
    ProviderError,
    ProviderSpec,
    VisionProvider,
    build_provider_chain,
    create_provider,
)

__all__ = [
    "CorpusClient",
    "CorpusClientError",
    "CorpusText",
    "SearchHit",
    "IdentificationPipeline",
    "CoordinateConvention",
    "ProviderError",
    "ProviderSpec",
    "VisionProvider",
    "build_provider_chain",
    "create_provider",
]
