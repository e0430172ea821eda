"""
Keyword-based category assignment for transactions the provider left uncategorized.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from app.models.transaction import Transaction

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"

CATEGORIES = frozenset({
    "Subscriptions",
    "Dining",
    "Groceries",
    "Transportation",
    "Travel",
    "Shopping",
    "Utilities",
    "Housing",
    "Insurance",
    "Health & Fitness",
    "Entertainment",
    "Education",
    "Personal Care",
    "Fees",
    "Income",
    "Transfers",
    UNCATEGORIZED,
})


class CategoryRule(NamedTuple):
    category: str
    keywords: Tuple[str, ...]


# Earlier rules win, so specific names ("uber eats", "amazon prime") sit above
# the generic ones ("uber", "amazon").
DEFAULT_CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule("Subscriptions", (
        "netflix", "spotify", "hulu", "disney+", "disney plus", "hbo max", "youtube premium",
        "amazon prime", "prime video", "apple.com/bill", "apple music", "icloud", "app store",
        "google storage", "google one", "adobe", "microsoft 365", "dropbox", "github",
        "openai", "chatgpt", "notion", "figma", "canva", "slack", "zoom.us", "patreon",
        "audible", "siriusxm", "paramount+", "peacock", "squarespace", "subscription",
    )),
    CategoryRule("Dining", (
        "uber eats", "doordash", "grubhub", "postmates", "starbucks", "dunkin", "mcdonald",
        "chipotle", "subway", "taco bell", "wendy", "burger king", "chick-fil-a", "domino",
        "pizza", "restaurant", "cafe", "coffee", "bistro", "grill", "bar & grill", "sushi",
    )),
    CategoryRule("Groceries", (
        "whole foods", "trader joe", "safeway", "kroger", "aldi", "publix", "wegmans",
        "instacart", "grocery", "market", "costco",
    )),
    CategoryRule("Transportation", (
        "uber", "lyft", "shell", "chevron", "exxon", "mobil", "bp ", "gas station", "fuel",
        "parking", "toll", "transit", "metro", "mta",
    )),
    CategoryRule("Travel", (
        "airline", "airlines", "delta", "united", "southwest", "american air", "jetblue",
        "airbnb", "hotel", "marriott", "hilton", "expedia", "booking.com",
    )),
    CategoryRule("Utilities", (
        "electric", "water", "utility", "utilities", "pg&e", "con edison", "comcast",
        "xfinity", "verizon", "at&t", "t-mobile", "spectrum", "internet", "phone",
    )),
    CategoryRule("Housing", ("rent", "mortgage", "hoa", "property management")),
    CategoryRule("Insurance", ("insurance", "geico", "state farm", "progressive", "allstate")),
    CategoryRule("Health & Fitness", (
        "pharmacy", "cvs", "walgreens", "doctor", "dental", "clinic", "hospital", "gym",
        "fitness", "planet fitness", "equinox", "peloton",
    )),
    CategoryRule("Entertainment", (
        "steam", "playstation", "xbox", "nintendo", "cinema", "theater", "theatre",
        "ticketmaster", "amc",
    )),
    CategoryRule("Education", ("tuition", "university", "college", "coursera", "udemy")),
    CategoryRule("Personal Care", ("salon", "barber", "spa", "sephora", "ulta")),
    CategoryRule("Shopping", (
        "amazon", "walmart", "target", "best buy", "ebay", "etsy", "ikea", "home depot",
        "lowe's", "apple store", "nike", "shop", "store",
    )),
    CategoryRule("Fees", ("fee", "interest charge", "overdraft")),
    CategoryRule("Income", ("payroll", "direct dep", "salary", "dividend", "interest paid")),
    CategoryRule("Transfers", ("transfer", "venmo", "zelle", "cash app", "paypal")),
)


def validate_rules(rules: Sequence[CategoryRule]) -> Tuple[CategoryRule, ...]:
    """Lower-case keywords and reject labels outside CATEGORIES."""
    validated = []
    for rule in rules:
        if rule.category not in CATEGORIES:
            raise ValueError(f"Unknown category label: {rule.category}")
        keywords = tuple(k.lower() for k in rule.keywords if k and k.strip())
        validated.append(CategoryRule(rule.category, keywords))
    return tuple(validated)


def load_category_rules(path: Optional[str] = None) -> Tuple[CategoryRule, ...]:
    """
    Load rules from a JSON file of [{"category": ..., "keywords": [...]}, ...],
    falling back to the defaults when no path is given.
    """
    if not path:
        return DEFAULT_CATEGORY_RULES

    with open(Path(path), "r", encoding="utf-8") as f:
        data = json.load(f)

    rules = [CategoryRule(entry["category"], tuple(entry["keywords"])) for entry in data]
    return validate_rules(rules)


def _first_match(text: str, rules: Sequence[CategoryRule]) -> Optional[str]:
    for rule in rules:
        for keyword in rule.keywords:
            if keyword in text:
                return rule.category
    return None


def categorize_transaction(
    name: Optional[str],
    merchant_name: Optional[str] = None,
    rules: Optional[Sequence[CategoryRule]] = None,
) -> str:
    """
    Return a category label for a transaction from its name text.

    The merchant name is tried on its own first, then merchant and name
    together, then the name. Callers must only use this when the provider
    supplied no category.
    """
    rules = DEFAULT_CATEGORY_RULES if rules is None else rules

    name_text = (name or "").strip().lower()
    merchant_text = (merchant_name or "").strip().lower()

    candidates: List[str] = []
    if merchant_text:
        candidates.append(merchant_text)
        if name_text:
            candidates.append(f"{merchant_text} {name_text}")
    elif name_text:
        candidates.append(name_text)

    for text in candidates:
        category = _first_match(text, rules)
        if category:
            return category

    return UNCATEGORIZED


def auto_categorize_transactions(
    db: Session,
    user_id: str,
    rules: Optional[Sequence[CategoryRule]] = None,
) -> Dict[str, int]:
    """
    Fill user_category for a user's stored transactions that have neither a
    provider category nor a user category.
    """
    transactions = db.query(Transaction).filter(
        Transaction.user_id == user_id,
        Transaction.user_category.is_(None),
    ).all()

    checked = 0
    categorized = 0
    for txn in transactions:
        if txn.primary_category:
            continue
        checked += 1
        category = categorize_transaction(txn.name, txn.merchant_name, rules)
        if category != UNCATEGORIZED:
            txn.user_category = category
            categorized += 1

    db.commit()
    logger.info(f"Auto-categorized {categorized} of {checked} transactions for user {user_id}")

    return {
        "total_checked": checked,
        "categorized_count": categorized,
        "uncategorized_count": checked - categorized,
    }
