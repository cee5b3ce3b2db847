"""Central configuration for the source sheet library."""

import os
import json
import logging
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ('openai', 'claude', 'gemini')

_DEFAULT_MODELS = {
    'openai': 'gpt-4o',
    'claude': 'claude-3-5-sonnet-20241022',
    'gemini': 'gemini-1.5-flash',
}


def get_ai_config_path() -> Path:
    """Get path to AI configuration file.

    Returns:
        Path to AI config file (AI_CONFIG_PATH, default: configs/ai_config.json)
    """
    env_path = os.getenv('AI_CONFIG_PATH')
    if env_path:
        return Path(env_path)
    return Path(__file__).parent.parent.parent / "configs" / "ai_config.json"


def load_ai_config() -> dict:
    """Load AI configuration from file.

    Returns:
        Dict with AI configuration (provider, model, api_key, providers)
    """
    config_path = get_ai_config_path()
    if config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load AI config: {e}")
    return {}


def save_ai_config(config: dict) -> None:
    """Save AI configuration to file.

    Args:
        config: Dict with AI configuration
    """
    config_path = get_ai_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.error(f"Failed to save AI config: {e}")
        raise


def get_ai_provider() -> str:
    """Get AI provider name.

    Returns:
        Provider name ("openai", "claude" or "gemini"), default "gemini"
    """
    provider = os.getenv('AI_PROVIDER') or load_ai_config().get('provider') or 'gemini'
    provider = provider.lower()
    if provider not in SUPPORTED_PROVIDERS:
        logger.warning(f"Invalid AI provider: {provider}, using 'gemini'")
        return 'gemini'
    return provider


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def get_ai_models() -> List[str]:
    """Get ordered list of models to try.

    AI_MODELS (comma separated) wins over AI_MODEL; falls back to the saved
    config and finally to the provider default.
    """
    models = _split_list(os.getenv('AI_MODELS')) or _split_list(os.getenv('AI_MODEL'))
    if models:
        return models
    config = load_ai_config()
    saved = config.get('models') or ([config['model']] if config.get('model') else [])
    if saved:
        return list(saved)
    return [_DEFAULT_MODELS[get_ai_provider()]]


def get_ai_model() -> str:
    """Get the first configured model name."""
    return get_ai_models()[0]


def get_ai_keys() -> List[str]:
    """Get ordered list of API keys (AI_KEYS, AI_KEY, then saved config)."""
    keys = _split_list(os.getenv('AI_KEYS')) or _split_list(os.getenv('AI_KEY'))
    if keys:
        return keys
    config = load_ai_config()
    if config.get('api_keys'):
        return list(config['api_keys'])
    return [config['api_key']] if config.get('api_key') else []


def get_ai_timeout() -> float:
    """Get per-request timeout in seconds for external services (default 10)."""
    value = os.getenv('AI_TIMEOUT')
    if value:
        try:
            return float(value)
        except ValueError:
            logger.warning(f"Invalid AI_TIMEOUT: {value}, using 10")
    return 10.0


def get_corpus_endpoint() -> str:
    """Get base URL of the reference corpus API."""
    return os.getenv('CORPUS_ENDPOINT', 'https://www.sefaria.org/api/')


def get_provider_specs() -> list:
    """Get the ordered (provider, credential, model) list for identification.

    A "providers" list in the saved config is used verbatim. Otherwise every
    configured key is paired with every configured model, key-major.

    Returns:
        List of ProviderSpec
    """
    from ..ai.providers import ProviderSpec

    config = load_ai_config()
    saved = config.get('providers')
    if saved and not os.getenv('AI_KEY') and not os.getenv('AI_KEYS'):
        return [
            ProviderSpec(
                provider=item.get('provider', get_ai_provider()),
                api_key=item['api_key'],
                model=item.get('model') or _DEFAULT_MODELS.get(item.get('provider', ''), get_ai_model()),
            )
            for item in saved
            if item.get('api_key')
        ]

    provider = get_ai_provider()
    return [
        ProviderSpec(provider=provider, api_key=key, model=model)
        for key in get_ai_keys()
        for model in get_ai_models()
    ]
