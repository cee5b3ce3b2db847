"""Configuration package."""

from .settings import (
    get_ai_config_path,
    load_ai_config,
    save_ai_config,
    get_ai_provider,
    get_ai_model,
    get_ai_models,
    get_ai_keys,
    get_ai_timeout,
    get_corpus_endpoint,
    get_provider_specs,
)
from .profile_loader import (
    ProfileConfig,
    load_profile,
    list_available_profiles,
    get_default_profile,
)

__all__ = [
    'get_ai_config_path',
    'load_ai_config',
    'save_ai_config',
    'get_ai_provider',
    'get_ai_model',
    'get_ai_models',
    'get_ai_keys',
    'get_ai_timeout',
    'get_corpus_endpoint',
    'get_provider_specs',
    'ProfileConfig',
    'load_profile',
    'list_available_profiles',
    'get_default_profile',
]
