"""Boundary to the external completion service."""

from .clients import (
    ClaudeNluClient,
    NluClient,
    OllamaNluClient,
    OpenAINluClient,
    build_client,
)
from .proposal import (
    NluProposal,
    coerce_intent,
    extract_json_object,
    fallback_proposal,
    parse_proposal,
    strip_json,
)

__all__ = [
    "ClaudeNluClient",
    "NluClient",
    "NluProposal",
    "OllamaNluClient",
    "OpenAINluClient",
    "build_client",
    "coerce_intent",
    "extract_json_object",
    "fallback_proposal",
    "parse_proposal",
    "strip_json",
]
