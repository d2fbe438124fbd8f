"""Preference-to-listing match scoring.

Scores one (preference, listing) pair that already passed the candidate
filter. Points are additive and capped at 100:

- 20: listing type (the filter guarantees compatibility)
- up to 40: category specificity (20 category, +15 subcategory, +5 sub-subcategory;
  a preference with no category gets a flat 15)
- up to 10: price attractiveness against the buyer's budget
- up to 30: keyword overlap between buyer keywords and the listing's enriched tags
- up to 10: proximity when both sides carry coordinates (flat 5 when the buyer
  has no location constraint)

Category points reward how specific the preference is, not equality: the
candidate filter has already enforced equality at every level the listing has.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal

from marketmatch.core.geo import haversine_km

MATCH_THRESHOLD = 60
MAX_SCORE = 100

CONDITION_LABELS = {
    "like_new": "Like new",
    "good": "Good condition",
    "fair": "Fair condition",
    "poor": "Poor condition",
}

# (minimum fraction of buyer keywords matched, points)
_KEYWORD_TIERS = ((0.8, 30), (0.6, 25), (0.4, 20), (0.2, 15))


@dataclass
class MatchScore:
    score: int
    reasons: list[str] = field(default_factory=list)
    matched_keywords: list[str] = field(default_factory=list)
    distance_km: float | None = None

    @property
    def is_match(self) -> bool:
        return self.score >= MATCH_THRESHOLD


def load_json_list(raw) -> list[str]:
    """Decode a JSON-array text column, tolerating NULL, lists and bad JSON."""
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return []
    if not isinstance(raw, (list, tuple)):
        return []
    return [str(item) for item in raw if item is not None]


def _to_decimal(value) -> Decimal | None:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _unique_keywords(keywords: list[str]) -> list[str]:
    seen: set[str] = set()
    unique = []
    for keyword in keywords:
        normalized = keyword.strip().lower()
        if normalized and normalized not in seen:
            seen.add(normalized)
            unique.append(normalized)
    return unique


def match_keywords(keywords: list[str], tags: list[str]) -> list[str]:
    """Buyer keywords that substring-match any tag, in either direction."""
    lowered_tags = [t.strip().lower() for t in tags if t and t.strip()]
    return [
        keyword
        for keyword in _unique_keywords(keywords)
        if any(tag in keyword or keyword in tag for tag in lowered_tags)
    ]


def _keyword_points(fraction: float) -> int:
    for threshold, points in _KEYWORD_TIERS:
        if fraction >= threshold:
            return points
    return 10 if fraction > 0 else 0


def _has_coordinates(obj) -> bool:
    return obj.latitude is not None and obj.longitude is not None


def score_match(preference, listing) -> MatchScore:
    """Score a (preference, listing) pair. Pure and deterministic."""
    score = 0
    reasons: list[str] = []

    # 1. Listing type
    score += 20
    reasons.append(f"Listing type match: {listing.listing_type}")

    # 2. Category specificity
    if preference.extracted_category:
        score += 20
        reasons.append(f"Category match: {listing.category}")
        if preference.extracted_subcategory:
            score += 15
            reasons.append(f"Subcategory match: {listing.subcategory or preference.extracted_subcategory}")
            if preference.extracted_subsubcategory:
                score += 5
                reasons.append(
                    f"Sub-subcategory match: {listing.subsubcategory or preference.extracted_subsubcategory}"
                )
    else:
        score += 15
        reasons.append("No category preference (flexible)")

    # 3. Price
    price = _to_decimal(listing.price) or Decimal("0")
    max_price = _to_decimal(preference.max_price)
    min_price = _to_decimal(preference.min_price)
    ratio = price / max_price if max_price is not None and max_price > 0 else None

    if ratio is not None and ratio <= Decimal("0.8"):
        score += 10
        reasons.append(f"Excellent value: {price} is {ratio:.0%} of budget {max_price}")
    elif ratio is not None and ratio <= 1:
        score += 5
        reasons.append(f"Within budget: {price} <= {max_price}")
    elif min_price is not None and price >= min_price:
        score += 5
        reasons.append(f"Above minimum price: {price} >= {min_price}")
    elif max_price is None and min_price is None:
        score += 3
        reasons.append("No price constraint specified")
    else:
        reasons.append(f"Price outside preferred range: {price}")

    # 4. Keyword overlap
    keywords = _unique_keywords(load_json_list(preference.extracted_keywords))
    matched: list[str] = []
    if keywords:
        matched = match_keywords(keywords, load_json_list(listing.enriched_tags))
        fraction = len(matched) / len(keywords)
        points = _keyword_points(fraction)
        score += points
        if matched:
            reasons.append(f"Keyword matches ({len(matched)}/{len(keywords)}): {', '.join(matched)}")
        else:
            reasons.append("No direct keyword matches found")
    else:
        score += 10
        reasons.append("No keywords specified (flexible)")

    # 5. Location
    distance = None
    if _has_coordinates(preference) and _has_coordinates(listing):
        distance = haversine_km(
            float(preference.latitude), float(preference.longitude),
            float(listing.latitude), float(listing.longitude),
        )
        if distance <= 1:
            score += 10
        elif distance <= 3:
            score += 8
        elif distance <= 5:
            score += 6
        else:
            score += 3
        reasons.append(f"Location {distance:.1f}km from preferred area")
    elif not _has_coordinates(preference):
        score += 5
        reasons.append("No location preference specified")
    else:
        reasons.append("Listing has no coordinates to compare")

    return MatchScore(
        score=max(0, min(score, MAX_SCORE)),
        reasons=reasons,
        matched_keywords=matched,
        distance_km=distance,
    )


def format_price(price, currency: str) -> str:
    amount = _to_decimal(price) or Decimal("0")
    text = f"{amount:,.0f}" if amount == amount.to_integral_value() else f"{amount:,.2f}"
    return f"{currency} {text}"


def build_match_reason(preference, listing, result: MatchScore) -> str:
    """Short buyer-facing summary of why the listing matched."""
    parts: list[str] = []

    price_text = format_price(listing.price, listing.currency)
    max_price = _to_decimal(preference.max_price)
    price = _to_decimal(listing.price) or Decimal("0")
    if max_price is not None and max_price > 0 and price <= max_price:
        ratio = price / max_price
        if ratio <= Decimal("0.8"):
            under = int(((1 - ratio) * 100).to_integral_value())
            parts.append(f"Great deal at {price_text} ({under}% under budget)")
        else:
            parts.append(f"Within budget at {price_text}")
    else:
        parts.append(f"Priced at {price_text}")

    category_label = listing.subsubcategory or listing.subcategory or listing.category
    if category_label:
        parts.append(category_label)

    if listing.listing_type == "product" and listing.condition and listing.condition != "new":
        parts.append(CONDITION_LABELS.get(listing.condition, listing.condition.replace("_", " ").capitalize()))

    if result.matched_keywords:
        parts.append(f"matches {', '.join(result.matched_keywords[:2])}")

    if result.distance_km is not None and result.distance_km <= 3:
        parts.append(f"{result.distance_km:.1f}km away")

    return " · ".join(parts)
