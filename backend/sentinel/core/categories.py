"""The closed set of spending categories.

Order matters: the last entry is the classification fallback.
"""

ALLOWED_CATEGORIES: tuple[str, ...] = (
    "Food",
    "Transport",
    "Utilities",
    "Entertainment",
    "Shopping",
)

FALLBACK_CATEGORY = ALLOWED_CATEGORIES[-1]
FALLBACK_CONFIDENCE = 0.5


def is_valid_category(category: str) -> bool:
    return category in ALLOWED_CATEGORIES


def allowed_categories() -> list[str]:
    return list(ALLOWED_CATEGORIES)
