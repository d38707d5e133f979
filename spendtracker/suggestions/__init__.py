from spendtracker.suggestions.engines import (
    CategorySuggestion,
    CategorySuggestionEngine,
    PayeeSuggestion,
    PayeeSuggestionEngine,
    similarity_percent,
)

__all__ = [
    "CategorySuggestion",
    "CategorySuggestionEngine",
    "PayeeSuggestion",
    "PayeeSuggestionEngine",
    "similarity_percent",
]
