"""OpenAI-backed extraction of structured criteria from a buyer's free text.

Features:
- Keywords, listing type and category hierarchy from a JSON-only prompt
- Price range and currency when the buyer names them
- Heuristic fallback whenever the model is unavailable or replies badly
"""

import json
import logging

from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError, field_validator

from marketmatch.config import settings
from marketmatch.core.exceptions import ExtractionError

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 10
FALLBACK_KEYWORDS = 5

CATEGORY_TAXONOMY = {
    "Electronics": ["CellPhone & Accessories", "Computers", "Cameras", "Audio", "Gaming"],
    "Vehicles": ["Cars", "Motorcycles", "Bicycles", "Parts & Accessories"],
    "RealEstate": ["ForSale", "ForRent", "Land"],
    "Home & Garden": ["Furniture", "Appliances", "Decor", "Garden"],
    "Fashion": ["Clothing", "Shoes", "Bags", "Jewelry"],
    "Sports & Outdoors": ["Fitness", "Camping", "Team Sports"],
    "Services": ["Photography", "Tutoring", "Repair", "Cleaning", "Events"],
}

EXTRACTION_PROMPT = """You are a metadata extraction system for a marketplace buyer preference. A buyer has described what they want to buy or need as a service. Extract relevant criteria from their preference.

Buyer Preference: "{preference_text}"

Available Categories: {categories}
Available Subcategories: {subcategories}

Extract the following information and return it as a JSON object:
- listing_type: "product" (physical items to buy) or "service" (someone to provide a service)
- keywords: array of relevant search terms (5-10 words)
- category: one from available categories if identifiable
- subcategory: one from available subcategories if identifiable
- subsubcategory: specific sub-sub-category if mentioned
- min_price: minimum price if specified (number only)
- max_price: maximum price if specified (number only)
- currency: currency code (USD, EUR, NPR, ...) if specified
- features: array of specific features or requirements mentioned

Examples:
Input: "Need a wedding photographer in Kathmandu for December"
Output: {{"listing_type": "service", "keywords": ["wedding", "photographer", "photography"], "category": "Services", "subcategory": "Photography", "features": ["wedding", "december"]}}

Input: "Looking for iPhone 15 under 1000 USD"
Output: {{"listing_type": "product", "keywords": ["iphone", "iphone 15", "apple", "smartphone"], "category": "Electronics", "subcategory": "CellPhone & Accessories", "subsubcategory": "Cell Phone", "max_price": 1000, "currency": "USD", "features": ["iphone 15"]}}

Return only valid JSON without additional text."""


class ExtractedPreference(BaseModel):
    """Validated extractor output. Prices are plain numbers or absent."""

    keywords: list[str] = Field(default_factory=list)
    listing_type: str | None = None
    category: str | None = None
    subcategory: str | None = None
    subsubcategory: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    currency: str = Field(default_factory=lambda: settings.default_currency)
    features: list[str] = Field(default_factory=list)

    @field_validator("keywords", "features", mode="before")
    @classmethod
    def _string_list(cls, value):
        if not isinstance(value, list):
            return []
        return [str(item).strip() for item in value if str(item).strip()]

    @field_validator("keywords")
    @classmethod
    def _cap_keywords(cls, value: list[str]) -> list[str]:
        return value[:MAX_KEYWORDS]

    @field_validator("listing_type", mode="before")
    @classmethod
    def _known_type(cls, value):
        return value if value in ("product", "service") else None

    @field_validator("min_price", "max_price", mode="before")
    @classmethod
    def _numeric_only(cls, value):
        # Strings like "1,000" or "cheap" are dropped rather than coerced.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, value):
        if not isinstance(value, str) or not value.strip():
            return settings.default_currency
        return value.strip().upper()

    @field_validator("category", "subcategory", "subsubcategory", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()


def fallback_extraction(preference_text: str) -> ExtractedPreference:
    """Keyword-only extraction used when the model cannot be used."""
    words = [word for word in preference_text.lower().split() if len(word) > 2]
    return ExtractedPreference(keywords=words[:FALLBACK_KEYWORDS], currency=settings.default_currency)


def parse_extraction(raw: str | None) -> ExtractedPreference:
    """Parse and validate a model reply. Raises ExtractionError when unusable."""
    if not raw or not raw.strip():
        raise ExtractionError("Empty reply from model")
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"Reply is not JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ExtractionError("Reply is not a JSON object")
    try:
        return ExtractedPreference.model_validate(payload)
    except ValidationError as exc:
        raise ExtractionError(str(exc)) from exc


class PreferenceExtractor:
    """Turns a buyer's preference text into structured matching criteria."""

    def __init__(self, api_key: str | None = None, model: str | None = None):
        api_key = settings.openai_api_key if api_key is None else api_key
        if api_key:
            self.client = AsyncOpenAI(api_key=api_key, timeout=settings.extraction_timeout_seconds)
            self.model = model or settings.openai_model
        else:
            self.client = None
            self.model = None
            logger.warning("OpenAI not configured, preference extraction uses keyword fallback")

    def _prompt(self, preference_text: str) -> str:
        subcategories = [sub for subs in CATEGORY_TAXONOMY.values() for sub in subs]
        return EXTRACTION_PROMPT.format(
            preference_text=preference_text,
            categories=", ".join(CATEGORY_TAXONOMY),
            subcategories=", ".join(subcategories),
        )

    async def extract(self, preference_text: str) -> ExtractedPreference:
        """Extract criteria; never raises, falls back to heuristic keywords."""
        if not self.client:
            return fallback_extraction(preference_text)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": self._prompt(preference_text)}],
                temperature=0.3,
                max_tokens=500,
            )
            return parse_extraction(response.choices[0].message.content)
        except ExtractionError as e:
            logger.warning(f"Unusable extraction reply, using fallback: {e}")
        except Exception as e:
            logger.error(f"OpenAI extraction error: {e}")
        return fallback_extraction(preference_text)


_extractor: PreferenceExtractor | None = None


def get_extractor() -> PreferenceExtractor:
    """FastAPI dependency returning the process-wide extractor."""
    global _extractor
    if _extractor is None:
        _extractor = PreferenceExtractor()
    return _extractor
