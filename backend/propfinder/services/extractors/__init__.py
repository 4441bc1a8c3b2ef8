"""Page extraction tiers."""

from propfinder.services.extractors.base import BaseExtractor
from propfinder.services.extractors.chain import ExtractorChain
from propfinder.services.extractors.embedded_state import EmbeddedStateExtractor
from propfinder.services.extractors.html_cards import HtmlCardExtractor
from propfinder.services.extractors.json_ld import JsonLdExtractor

__all__ = [
    "BaseExtractor",
    "ExtractorChain",
    "EmbeddedStateExtractor",
    "JsonLdExtractor",
    "HtmlCardExtractor",
]
