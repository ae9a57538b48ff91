"""
Maps API keys to AI vendors and builds the matching adapter.

Key formats overlap (every Anthropic key also starts with ``sk-``), so the
rules are checked in order and the first match wins. Users type raw keys
into the client, which makes this table part of the public contract.
"""

import logging
import re
from typing import Callable, Dict, List, Optional, Tuple, Type

from . import llm
from .models import ProviderInfo, Vendor

logger = logging.getLogger(__name__)

_MISTRAL_KEY = re.compile(r"[a-zA-Z0-9]{32}")

KEY_RULES: List[Tuple[Vendor, Callable[[str], bool]]] = [
    (Vendor.ANTHROPIC, lambda key: key.startswith("sk-ant-")),
    (Vendor.GROQ, lambda key: key.startswith("gsk_")),
    (Vendor.GEMINI, lambda key: key.startswith("AIza")),
    (Vendor.MISTRAL, lambda key: _MISTRAL_KEY.fullmatch(key) is not None),
    (Vendor.OPENAI, lambda key: key.startswith("sk-")),
]

ADAPTERS: Dict[Vendor, Type[llm.LLM]] = {
    Vendor.ANTHROPIC: llm.Anthropic,
    Vendor.GROQ: llm.Groq,
    Vendor.GEMINI: llm.Gemini,
    Vendor.MISTRAL: llm.Mistral,
    Vendor.OPENAI: llm.OpenAI,
}

PROVIDER_INFO: Dict[Vendor, ProviderInfo] = {
    Vendor.ANTHROPIC: ProviderInfo(
        name="Claude (Anthropic)",
        icon="🧠",
        color="#D97706",
        models=["claude-3-haiku-20240307", "claude-3-sonnet-20240229"],
    ),
    Vendor.OPENAI: ProviderInfo(
        name="GPT (OpenAI)",
        icon="🤖",
        color="#10B981",
        models=["gpt-3.5-turbo", "gpt-4", "gpt-4-turbo"],
    ),
    Vendor.GEMINI: ProviderInfo(
        name="Gemini (Google)",
        icon="✨",
        color="#4285F4",
        models=["gemini-1.5-flash", "gemini-1.5-pro"],
    ),
    Vendor.GROQ: ProviderInfo(
        name="Llama (Groq)",
        icon="🦙",
        color="#F97316",
        models=[
            "llama-3.1-70b-versatile",
            "llama-3.1-8b-instant",
            "mixtral-8x7b-32768",
        ],
    ),
    Vendor.MISTRAL: ProviderInfo(
        name="Mistral AI",
        icon="🌀",
        color="#FF7000",
        models=[
            "mistral-small-latest",
            "mistral-medium-latest",
            "mistral-large-latest",
        ],
    ),
}

UNKNOWN_PROVIDER = ProviderInfo(name="Unknown", icon="❓", color="#6B7280", models=[])


def detect_provider(api_key) -> Optional[Vendor]:
    """Returns the vendor whose key format matches, or None.

    Never raises: anything that is not a non-empty string is simply unknown.
    """
    if not api_key or not isinstance(api_key, str):
        return None
    for vendor, matches in KEY_RULES:
        if matches(api_key):
            return vendor
    return None


def create_provider(
    api_key, timeout: float = llm.DEFAULT_TIMEOUT
) -> Optional[llm.LLM]:
    """Builds the adapter for the key's vendor, or returns None if undetected.

    Adapters only construct SDK clients here; nothing touches the network
    until the first ``chat`` call.
    """
    vendor = detect_provider(api_key)
    if vendor is None:
        return None
    logger.info("Creating %s completion adapter", vendor.value)
    return ADAPTERS[vendor](api_key, timeout=timeout)


def get_provider_info(vendor) -> ProviderInfo:
    """Looks up display details. Unknown ids return ``UNKNOWN_PROVIDER``."""
    try:
        vendor = Vendor(vendor)
    except (TypeError, ValueError):
        return UNKNOWN_PROVIDER.model_copy(deep=True)
    return PROVIDER_INFO[vendor].model_copy(deep=True)
