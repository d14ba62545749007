# app/core/normalizers.py

"""
Data normalization utilities.

Dates become calendar days, amounts are compared by percent difference,
and raw statement text becomes a readable merchant name.
"""

from datetime import date, datetime, timedelta
from typing import Any
import re


# ============================================
# Dates
# ============================================

def normalize_date(d: Any) -> date | None:
    """
    Normalize date to date object.

    Handles:
    - date objects
    - datetime objects (the calendar date, time zone ignored)
    - ISO strings, with or without a time part
    """
    if d is None:
        return None

    if isinstance(d, datetime):
        return d.date()

    if isinstance(d, date):
        return d

    if isinstance(d, str):
        value = d.strip()
        if not value:
            return None
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            pass

        formats = [
            '%d/%m/%Y',
            '%d.%m.%Y',
            '%Y/%m/%d',
        ]
        for fmt in formats:
            try:
                return datetime.strptime(value, fmt).date()
            except ValueError:
                continue

    return None


def day_number(d: date | datetime) -> int:
    """Whole-day ordinal, so differences never depend on clock time or DST."""
    if isinstance(d, datetime):
        d = d.date()
    return d.toordinal()


def days_between(a: date, b: date) -> int:
    """Absolute number of calendar days between two dates."""
    return abs(day_number(a) - day_number(b))


def previous_business_day(d: date) -> date:
    """Step back one day, and past Saturday to Friday. Sunday is a business day."""
    prev = d - timedelta(days=1)
    if prev.weekday() == 5:  # Saturday
        prev -= timedelta(days=1)
    return prev


# ============================================
# Amounts
# ============================================

def percent_difference(amount: int, reference: int) -> float:
    """abs(amount - reference) as a percentage of ``reference``."""
    if reference == 0:
        return 0.0 if amount == 0 else 100.0
    return abs(amount - reference) / abs(reference) * 100


# ============================================
# Merchant names
# ============================================

MERCHANT_ABBREVIATIONS: dict[str, str] = {
    'facebk': 'Facebook',
    'fb': 'Facebook',
    'amzn': 'Amazon',
    'amazn': 'Amazon',
    'googl': 'Google',
    'google': 'Google',
    'msft': 'Microsoft',
    'nflx': 'Netflix',
    'netflix': 'Netflix',
    'spotify': 'Spotify',
    'uber': 'Uber',
    'lyft': 'Lyft',
    'paypal': 'PayPal',
    'pp': 'PayPal',
    'dropbox': 'Dropbox',
    'slack': 'Slack',
    'zoom': 'Zoom',
    'adobe': 'Adobe',
    'canva': 'Canva',
    'shopify': 'Shopify',
    'wix': 'Wix',
    'godaddy': 'GoDaddy',
    'namecheap': 'Namecheap',
    'cloudflare': 'Cloudflare',
    'digitalocean': 'DigitalOcean',
    'heroku': 'Heroku',
    'github': 'GitHub',
    'gitlab': 'GitLab',
    'notion': 'Notion',
    'figma': 'Figma',
    'linkedin': 'LinkedIn',
    'twitter': 'Twitter',
    'tiktok': 'TikTok',
    'upwork': 'Upwork',
    'fiverr': 'Fiverr',
    'stripe': 'Stripe',
    'intuit': 'Intuit',
    'xero': 'Xero',
    'mailchimp': 'Mailchimp',
    'sendgrid': 'SendGrid',
    'twilio': 'Twilio',
    'aws': 'Amazon Web Services',
    'gcp': 'Google Cloud',
    'azure': 'Microsoft Azure',
}

# Bank statement prefixes (transfer to, payment to, standing order, ...)
_HEBREW_PREFIXES = [
    re.compile(r'^העברה\s+ל-?\s*'),
    re.compile(r'^תשלום\s+ל-?\s*'),
    re.compile(r'^הו"ק\s*'),
    re.compile(r"^הו''ק\s*"),
    re.compile(r'^הפקדה\s*-?\s*'),
    re.compile(r'^משיכת מזומן\s*-?\s*'),
    re.compile(r'^כרטיס אשראי\s*-?\s*'),
    re.compile(r'^ת\. זכות\s*'),
    re.compile(r'^ת\. חובה\s*'),
    re.compile(r'^העברת\s*'),
    re.compile(r'^חיוב\s*'),
    re.compile(r'^זיכוי\s*'),
]


def parse_merchant_name(description: str | None) -> str:
    """
    Pull a merchant name out of a bank or card statement line.

    "FACEBK *94ED4BD5F2" -> "Facebook", "Upwork -878873220REF" -> "Upwork".
    """
    if not description:
        return ""

    merchant = description.strip()

    for prefix in _HEBREW_PREFIXES:
        merchant = prefix.sub('', merchant)

    # Reference codes: "FACEBK *94ED4BD5F2", "Upwork -878873220REF"
    merchant = re.sub(r'\s*\*[A-Z0-9]+$', '', merchant, flags=re.IGNORECASE)
    merchant = re.sub(r'\s*-[A-Z0-9]{6,}$', '', merchant, flags=re.IGNORECASE)

    merchant = re.split(r'\s*[-–]\s*\d', merchant)[0]
    merchant = re.split(r'\s{2,}', merchant)[0]

    merchant = re.sub(r'\s*\([^)]*\d+[^)]*\)\s*$', '', merchant)
    merchant = re.sub(r'\s*\*+\s*\d*\s*$', '', merchant)
    merchant = merchant.strip()

    lower = merchant.lower()
    if lower in MERCHANT_ABBREVIATIONS:
        return MERCHANT_ABBREVIATIONS[lower]

    first_word = lower.split()[0] if lower.split() else ""
    if first_word in MERCHANT_ABBREVIATIONS:
        return MERCHANT_ABBREVIATIONS[first_word]

    return merchant or description.strip()


def merchant_base_key(description: str | None) -> str:
    """Simplified merchant key that groups spelling variants together."""
    parsed = parse_merchant_name(description)
    lower = parsed.lower()

    for abbrev, full in MERCHANT_ABBREVIATIONS.items():
        if lower == full.lower() or lower == abbrev:
            return full.lower()

    key = re.sub(r'[\'"״׳\-_.]', '', lower)
    return re.sub(r'\s+', ' ', key).strip()


def normalize_merchant_name(merchant: str | None) -> str:
    """Parsed merchant name with single spaces."""
    parsed = parse_merchant_name(merchant)
    return re.sub(r'\s+', ' ', parsed).strip()
