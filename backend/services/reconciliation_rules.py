"""Initial classification of payment activity records.

Non-merchant money movements (loans, fees, transfers, interest, ...) are
never matched against bank transactions; everything else starts out
``pending``.  All keyword checks use word boundaries so that "coffee" does
not hit "fee" and "balloon" does not hit "loan".
"""

import re

from models.payment_activity import NOT_APPLICABLE, PENDING

NON_RECONCILABLE_KEYWORDS = (
    "loan",
    "fee",
    "transfer",
    "withdrawal",
    "interest",
    "adjustment",
    "currency conversion",
    "credit payment",
)

NON_RECONCILABLE_TRANSACTION_TYPES = (
    "loan",
    "fee",
    "transfer",
    "withdrawal",
    "interest",
    "adjustment",
    "currency_conversion",
    "credit_payment",
    "loan_payment",
)

NON_RECONCILABLE_MERCHANT_CATEGORIES = (
    "loan",
    "fee",
    "currency exchange",
    "loan services",
)


def _type_pattern(type_name: str) -> re.Pattern:
    # Underscore-delimited tokens: "loan_payment" contains "loan", "balloon" does not
    return re.compile(rf"(^|_){re.escape(type_name)}($|_)", re.IGNORECASE)


def _word_pattern(keyword: str) -> re.Pattern:
    return re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)


_TYPE_PATTERNS = [_type_pattern(t) for t in NON_RECONCILABLE_TRANSACTION_TYPES]
_CATEGORY_PATTERNS = [
    _word_pattern(c) for c in NON_RECONCILABLE_MERCHANT_CATEGORIES if " " not in c
]
_KEYWORD_PATTERNS = [_word_pattern(k) for k in NON_RECONCILABLE_KEYWORDS if " " not in k]


def is_non_reconcilable_type(transaction_type: str | None) -> bool:
    """Check an upstream transaction-type tag such as ``LOAN_PAYMENT``."""
    if not transaction_type:
        return False
    normalized = str(transaction_type).strip().lower()
    return any(pattern.search(normalized) for pattern in _TYPE_PATTERNS)


def is_non_reconcilable_category(merchant_category: str | None) -> bool:
    if not merchant_category:
        return False
    normalized = merchant_category.lower()
    if any(c in normalized for c in NON_RECONCILABLE_MERCHANT_CATEGORIES if " " in c):
        return True
    return any(pattern.search(normalized) for pattern in _CATEGORY_PATTERNS)


def is_non_reconcilable_description(description: str | None) -> bool:
    if not description:
        return False
    normalized = description.lower()
    if any(k in normalized for k in NON_RECONCILABLE_KEYWORDS if " " in k):
        return True
    return any(pattern.search(normalized) for pattern in _KEYWORD_PATTERNS)


def determine_initial_status(
    raw_data: dict | None,
    merchant_category: str | None,
    description: str | None,
) -> str:
    """Return ``not_applicable`` for non-merchant movements, else ``pending``.

    Checked in order: the upstream ``transaction_type`` tag in the raw
    payload, the merchant category, then the free-text description.
    """
    transaction_type = (raw_data or {}).get("transaction_type")
    if is_non_reconcilable_type(transaction_type):
        return NOT_APPLICABLE
    if is_non_reconcilable_category(merchant_category):
        return NOT_APPLICABLE
    if is_non_reconcilable_description(description):
        return NOT_APPLICABLE
    return PENDING


def determine_initial_status_for(activity) -> str:
    """Classify an activity-like object (``raw_data``, ``merchant_category``, ``description``)."""
    return determine_initial_status(
        getattr(activity, "raw_data", None),
        getattr(activity, "merchant_category", None),
        getattr(activity, "description", None),
    )
