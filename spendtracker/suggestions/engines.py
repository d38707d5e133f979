"""
Suggestion Engines

Heuristics that help the user fill in a transaction:
1. CategorySuggestionEngine - guess a category from the payee and amount
2. PayeeSuggestionEngine - rank previously used payees for a typed prefix

DESIGN DECISION: Suggestions are advisory only.
They never write to the ledger; the caller decides whether to use them.
Both engines are deterministic so the same history gives the same ranking.
"""

import re
from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field
from rapidfuzz.distance import Levenshtein

from spendtracker.audit import get_logger
from spendtracker.models.ledger import ZERO, Account, CustomCategory


logger = get_logger(__name__)


# Keyword tables, checked in this order
CATEGORY_PATTERNS: dict[str, list[str]] = {
    "Food & Dining": [
        "mcdonald", "burger", "pizza", "starbucks", "coffee", "restaurant",
        "cafe", "food", "dining", "subway", "kfc", "taco", "wendy",
    ],
    "Gas & Fuel": ["shell", "exxon", "bp", "chevron", "mobil", "gas", "fuel", "gasoline", "petrol"],
    "Groceries": [
        "walmart", "target", "kroger", "safeway", "whole foods", "trader joe",
        "costco", "grocery", "supermarket", "market",
    ],
    "Shopping": ["amazon", "ebay", "mall", "store", "shopping", "retail", "online", "purchase"],
    "Bills & Utilities": [
        "electric", "power", "water", "sewer", "internet", "phone", "cable",
        "utility", "bill", "payment",
    ],
    "Healthcare": [
        "doctor", "clinic", "hospital", "pharmacy", "medical", "health",
        "dental", "vision", "prescription",
    ],
    "Entertainment": ["movie", "theater", "netflix", "spotify", "games", "entertainment", "concert", "show"],
    "Transportation": ["uber", "lyft", "taxi", "bus", "train", "parking", "toll", "transport"],
}

SIMILARITY_THRESHOLD = 70
KEYWORD_HIT_CONFIDENCE = 0.9
AMOUNT_HEURISTIC_CONFIDENCE = 0.4

LARGE_AMOUNT = Decimal("100")
SMALL_AMOUNT = Decimal("10")


def similarity_percent(first: str, second: str) -> int:
    """Edit-distance similarity as a whole percentage of the longer string."""
    longest = max(len(first), len(second))
    if longest == 0:
        return 0
    distance = Levenshtein.distance(first, second)
    return int((1 - distance / longest) * 100)


class CategorySuggestion(BaseModel):
    """Suggested catalog category for a payee."""

    category: CustomCategory
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str


class CategorySuggestionEngine:
    """
    Suggest a category from the payee name, falling back to the amount.

    Matching order:
    1. Keyword found as a whole word inside the payee
    2. Best fuzzy match of the whole payee against a keyword (> 70%)
    3. Amount: over 100 suggests shopping, under 10 suggests food
    """

    def __init__(self, patterns: Optional[dict[str, list[str]]] = None):
        self._patterns = patterns or CATEGORY_PATTERNS

    def suggest_category(
        self,
        payee: str,
        amount: Decimal,
        categories: Iterable[CustomCategory],
    ) -> Optional[CategorySuggestion]:
        categories = list(categories)
        clean_payee = payee.strip().lower()

        if clean_payee:
            match = self._keyword_hit(clean_payee) or self._best_fuzzy_match(clean_payee)
            if match:
                group, keyword, confidence = match
                category = self._category_containing(group, categories)
                if category:
                    return CategorySuggestion(
                        category=category,
                        confidence=confidence,
                        reasoning=f"Payee '{payee.strip()}' matches '{keyword}' ({group})",
                    )
                logger.debug("suggested_group_not_in_catalog", group=group)

        return self._suggest_by_amount(Decimal(amount), categories)

    def _keyword_hit(self, payee: str) -> Optional[tuple[str, str, float]]:
        for group, keywords in self._patterns.items():
            for keyword in keywords:
                if re.search(rf"\b{re.escape(keyword)}\b", payee):
                    return group, keyword, KEYWORD_HIT_CONFIDENCE
        return None

    def _best_fuzzy_match(self, payee: str) -> Optional[tuple[str, str, float]]:
        best = None
        best_score = 0
        for group, keywords in self._patterns.items():
            for keyword in keywords:
                score = similarity_percent(payee, keyword)
                if score > best_score and score > SIMILARITY_THRESHOLD:
                    best_score = score
                    best = (group, keyword, score / 100)
        return best

    @staticmethod
    def _category_containing(name: str, categories: list[CustomCategory]) -> Optional[CustomCategory]:
        wanted = name.lower()
        for category in categories:
            if wanted in category.name.lower():
                return category
        return None

    def _suggest_by_amount(
        self,
        amount: Decimal,
        categories: list[CustomCategory],
    ) -> Optional[CategorySuggestion]:
        if amount > LARGE_AMOUNT:
            category = self._category_containing("shopping", categories)
            reasoning = f"Amounts over {LARGE_AMOUNT} are usually shopping"
        elif amount < SMALL_AMOUNT:
            category = self._category_containing("food", categories)
            reasoning = f"Amounts under {SMALL_AMOUNT} are usually food"
        else:
            return None

        if category is None:
            return None
        return CategorySuggestion(
            category=category,
            confidence=AMOUNT_HEURISTIC_CONFIDENCE,
            reasoning=reasoning,
        )


# =============================================================================
# PAYEE SUGGESTIONS
# =============================================================================

MIN_QUERY_LENGTH = 2
DEFAULT_CATEGORY_ICON = "questionmark.circle"


class PayeeSuggestion(BaseModel):
    """A previously used payee with its usage statistics."""

    name: str
    frequency: int = Field(ge=1)
    last_used: datetime
    average_amount: Decimal
    most_common_category: str
    most_common_category_icon: str
    score: float = 0.0

    @property
    def display_text(self) -> str:
        if self.average_amount > 0:
            return f"{self.name} • Avg: ${self.average_amount:.0f}"
        return self.name


class PayeeSuggestionEngine:
    """
    Rank payees from transaction history against a typed query.

    Score = exact match (+100) + prefix match (+50) + frequency x 5
            + max(0, 30 - days since last use) + similarity x 20
    """

    def get_payee_suggestions(
        self,
        query: str,
        accounts: Iterable[Account],
        categories: Iterable[CustomCategory] = (),
        limit: int = 5,
        now: Optional[datetime] = None,
    ) -> list[PayeeSuggestion]:
        if len(query) < MIN_QUERY_LENGTH:
            return []

        now = now or datetime.now()
        needle = query.lower()
        suggestions = [
            s for s in self._collect(accounts, list(categories))
            if needle in s.name.lower()
        ]
        for suggestion in suggestions:
            suggestion.score = self._relevance(suggestion, needle, now)

        suggestions.sort(key=lambda s: s.score, reverse=True)
        return suggestions[:limit]

    def _collect(
        self,
        accounts: Iterable[Account],
        categories: list[CustomCategory],
    ) -> list[PayeeSuggestion]:
        icons = {c.name.lower(): c.icon for c in categories}
        stats: dict[str, dict] = {}

        for account in accounts:
            for transaction in account.transactions:
                name = transaction.payee.strip()
                if not name or "transfer" in name.lower():
                    continue
                entry = stats.setdefault(name, {
                    "count": 0,
                    "total": ZERO,
                    "last_used": transaction.date,
                    "categories": Counter(),
                })
                entry["count"] += 1
                entry["total"] += transaction.amount
                entry["last_used"] = max(entry["last_used"], transaction.date)
                entry["categories"][transaction.display_category] += 1

        suggestions = []
        for name, entry in stats.items():
            top_category = entry["categories"].most_common(1)[0][0]
            suggestions.append(PayeeSuggestion(
                name=name,
                frequency=entry["count"],
                last_used=entry["last_used"],
                average_amount=entry["total"] / entry["count"],
                most_common_category=top_category,
                most_common_category_icon=icons.get(top_category.lower(), DEFAULT_CATEGORY_ICON),
            ))
        return suggestions

    @staticmethod
    def _relevance(suggestion: PayeeSuggestion, query: str, now: datetime) -> float:
        name = suggestion.name.lower()
        score = 0.0

        if name == query:
            score += 100
        if name.startswith(query):
            score += 50

        score += suggestion.frequency * 5

        days_since = (now - suggestion.last_used).days
        score += max(0, 30 - days_since)

        longest = max(len(name), len(query))
        score += (longest - Levenshtein.distance(name, query)) / longest * 20

        return score
