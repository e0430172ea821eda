"""Service for recurring transaction detection and due-date projection."""

from typing import List, Optional, Dict, Iterable, Sequence, Tuple
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
import json
import logging
import re

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.config import settings
from app.models.recurring import RecurringTransaction, Frequency, SeriesSource
from app.schemas.normalized import (
    EXPENSE,
    INCOME,
    NormalizedTransaction,
    RecurringSeriesCandidate,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

# Well-known subscription services and software billing terms
DEFAULT_SUBSCRIPTION_KEYWORDS: Tuple[str, ...] = (
    "cursor", "openai", "apple", "squarespace", "workspace", "worksp", "spotify", "netflix",
    "disney", "hulu", "amazon prime", "youtube premium", "adobe", "microsoft",
    "google", "dropbox", "slack", "zoom", "notion", "figma", "canva", "github",
    "gitlab", "atlassian", "jira", "confluence", "salesforce", "hubspot", "zendesk",
    "intercom", "mailchimp", "sendgrid", "twilio", "stripe", "paypal", "shopify",
    "wix", "wordpress", "webflow", "framer", "linear", "vercel", "netlify",
    "cloudflare", "aws", "azure", "gcp", "digitalocean", "heroku", "mongodb",
    "redis", "elastic", "datadog", "sentry", "new relic", "loggly", "papertrail",
)

# Provider category hints that mark an outflow stream as a subscription
SUBSCRIPTION_CATEGORY_HINTS: Tuple[str, ...] = ("subscription", "software", "streaming")

_NON_ALNUM = re.compile(r"[^a-z0-9]")


class DetectionConfig(BaseModel):
    """Tunable inputs of the pattern detector."""

    lookback_days: Optional[int] = None
    lookback_limit: Optional[int] = 500
    subscription_amount_threshold: Decimal = Decimal("100")
    subscription_keywords: Tuple[str, ...] = DEFAULT_SUBSCRIPTION_KEYWORDS


def load_subscription_keywords(path: Optional[str] = None) -> Tuple[str, ...]:
    """Load a JSON list of keywords, or return the defaults."""
    if not path:
        return DEFAULT_SUBSCRIPTION_KEYWORDS
    with open(path, "r", encoding="utf-8") as f:
        keywords = json.load(f)
    return tuple(k.strip().lower() for k in keywords if isinstance(k, str) and k.strip())


def get_detection_config() -> DetectionConfig:
    """Build the detector configuration from application settings."""
    return DetectionConfig(
        lookback_days=settings.recurring_lookback_days,
        lookback_limit=settings.recurring_lookback_limit,
        subscription_amount_threshold=Decimal(str(settings.subscription_amount_threshold)),
        subscription_keywords=load_subscription_keywords(settings.subscription_keywords_path),
    )


def normalize_merchant_key(name: Optional[str]) -> str:
    """Grouping key: lower-cased with every non-alphanumeric character removed."""
    return _NON_ALNUM.sub("", (name or "").lower())


def frequency_for_gap(average_gap: float) -> Frequency:
    """Map a mean gap in days to a frequency bucket (lower bounds inclusive)."""
    if average_gap < 10:
        # Also covers zero gaps (all occurrences on one day)
        return Frequency.weekly
    if average_gap < 20:
        return Frequency.biweekly
    if average_gap < 45:
        return Frequency.monthly
    if average_gap < 100:
        return Frequency.quarterly
    return Frequency.yearly


def has_subscription_keyword(name: Optional[str], keywords: Iterable[str]) -> bool:
    text = (name or "").lower()
    return any(keyword in text for keyword in keywords)


def is_subscription(name: Optional[str], average_amount: Decimal, config: DetectionConfig) -> bool:
    """
    Heuristic: a known subscription name, or a small regular charge.
    False positives and negatives are expected.
    """
    if has_subscription_keyword(name, config.subscription_keywords):
        return True
    return average_amount < config.subscription_amount_threshold


def apply_lookback_window(
    transactions: Sequence[NormalizedTransaction],
    config: DetectionConfig,
    today: Optional[date] = None,
) -> List[NormalizedTransaction]:
    """Keep transactions inside the lookback window, most recent first, capped at the limit."""
    today = today or date.today()
    window = list(transactions)
    if config.lookback_days is not None:
        cutoff = today - timedelta(days=config.lookback_days)
        window = [t for t in window if t.date >= cutoff]
    window.sort(key=lambda t: (t.date, t.id), reverse=True)
    if config.lookback_limit is not None:
        window = window[:config.lookback_limit]
    return window


def _mean(values: Sequence[Decimal]) -> Decimal:
    return (sum(values, Decimal("0")) / len(values)).quantize(CENTS, rounding=ROUND_HALF_UP)


def detect_recurring_patterns(
    transactions: Iterable[NormalizedTransaction],
    transaction_type: str = EXPENSE,
    config: Optional[DetectionConfig] = None,
) -> List[RecurringSeriesCandidate]:
    """
    Group one direction of posted transactions by merchant key and return a
    candidate for every group with at least two members. No candidates is a
    normal result.
    """
    config = config or DetectionConfig()

    groups: Dict[Tuple[str, str], List[NormalizedTransaction]] = defaultdict(list)
    for txn in transactions:
        # Pending rows are re-issued under a new id once posted
        if txn.pending or txn.transaction_type != transaction_type:
            continue
        key = normalize_merchant_key(txn.display_name)
        if not key:
            continue
        groups[(txn.account_id, key)].append(txn)

    candidates = []
    for (account_id, key), members in groups.items():
        if len(members) < 2:
            continue

        members = sorted(members, key=lambda t: (t.date, t.id))
        amounts = [abs(t.amount) for t in members]
        gaps = [(b.date - a.date).days for a, b in zip(members, members[1:])]
        average_gap = sum(gaps) / len(gaps)

        latest = members[-1]
        average_amount = _mean(amounts)
        name = latest.display_name

        if transaction_type == INCOME:
            subscription = False
        else:
            subscription = is_subscription(name, average_amount, config)

        candidates.append(RecurringSeriesCandidate(
            account_id=account_id,
            name=name,
            normalized_name=key,
            merchant_name=latest.merchant_name,
            expected_amount=abs(latest.amount).quantize(CENTS, rounding=ROUND_HALF_UP),
            average_amount=average_amount,
            frequency=frequency_for_gap(average_gap).value,
            start_date=members[0].date,
            last_transaction_date=latest.date,
            transaction_type=transaction_type,
            is_subscription=subscription,
            is_active=True,
            total_occurrences=len(members),
            source=SeriesSource.detected.value,
            transaction_ids=[t.id for t in members],
        ))

    candidates.sort(key=lambda c: (c.account_id, c.normalized_name))
    return candidates


def detect_all_recurring(
    transactions: Iterable[NormalizedTransaction],
    config: Optional[DetectionConfig] = None,
) -> List[RecurringSeriesCandidate]:
    """Run expense and income detection passes."""
    transactions = list(transactions)
    return (
        detect_recurring_patterns(transactions, EXPENSE, config)
        + detect_recurring_patterns(transactions, INCOME, config)
    )


def _frequency_step(frequency: Optional[str]):
    freq = (frequency or "").lower()
    if "biweek" in freq or "bi_week" in freq or "fortnight" in freq:
        return timedelta(days=14)
    if "semi_month" in freq or "semimonth" in freq:
        return timedelta(days=15)
    if "week" in freq:
        return timedelta(days=7)
    if "quarter" in freq:
        return relativedelta(months=3)
    if "month" in freq:
        return relativedelta(months=1)
    if "year" in freq or "annual" in freq:
        return relativedelta(years=1)
    return timedelta(days=30)


def calculate_next_due_date(
    last_date: Optional[date],
    frequency: Optional[str],
    today: Optional[date] = None,
) -> Optional[date]:
    """
    Project the next occurrence of a series on or after today.

    A last date that is already today or later is returned as-is. Calendar
    steps clamp to the end of shorter months, and each step is taken from
    last_date so a 31st keeps landing on month ends.
    """
    if last_date is None:
        return None

    today = today or date.today()
    if last_date >= today:
        return last_date

    step = _frequency_step(frequency)
    if isinstance(step, timedelta):
        periods = -(-(today - last_date).days // step.days)
        return last_date + step * periods

    periods = 1
    next_date = last_date + step
    while next_date < today:
        periods += 1
        next_date = last_date + step * periods
    return next_date


def get_recurring_series(
    db: Session,
    user_id: str,
    include_inactive: bool = False,
    transaction_type: Optional[str] = None,
    subscriptions_only: bool = False,
) -> List[RecurringTransaction]:
    """Get a user's recurring series ordered by next due date."""
    query = db.query(RecurringTransaction).filter(RecurringTransaction.user_id == user_id)

    if not include_inactive:
        query = query.filter(RecurringTransaction.is_active == True)
    if transaction_type:
        query = query.filter(RecurringTransaction.transaction_type == transaction_type)
    if subscriptions_only:
        query = query.filter(RecurringTransaction.is_subscription == True)

    series = query.all()
    return sorted(series, key=lambda s: (s.next_due_date is None, s.next_due_date or date.max, s.name))
