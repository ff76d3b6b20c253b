"""Keyword and regex entity extraction for domain utility requests."""

import re
from datetime import date, timedelta

COMMON_SYMPTOMS = ("headache", "fever", "cough", "pain", "nausea", "fatigue", "cold", "flu")

KNOWN_CITIES = (
    "mumbai",
    "delhi",
    "bangalore",
    "bengaluru",
    "chennai",
    "kolkata",
    "hyderabad",
    "pune",
    "ahmedabad",
    "goa",
    "london",
    "paris",
    "new york",
    "tokyo",
)

KNOWN_PRODUCTS = ("iphone", "macbook", "samsung", "oneplus", "laptop", "phone", "headphones", "watch")

DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{4}|\d{1,2}-\d{1,2}-\d{4}")


def extract_symptoms(query: str) -> list[str]:
    q = query.lower()
    found = [s for s in COMMON_SYMPTOMS if s in q]
    return found or ["general discomfort"]


def extract_location(query: str, direction: str | None = None) -> str | None:
    """
    Find a location in the query.

    With direction "from"/"to" the word after that preposition wins; otherwise
    the first known city mentioned.
    """
    q = query.lower()

    if direction in ("from", "to"):
        match = re.search(rf"\b{direction}\s+([a-z]+)", q)
        if match:
            return match.group(1)

    for city in KNOWN_CITIES:
        if city in q:
            return city
    return None


def extract_date(query: str, today: date | None = None) -> str | None:
    """Explicit date, or today/tomorrow resolved to ISO format."""
    match = DATE_PATTERN.search(query)
    if match:
        return match.group(0)

    today = today or date.today()
    q = query.lower()
    if "tomorrow" in q:
        return (today + timedelta(days=1)).isoformat()
    if "today" in q:
        return today.isoformat()
    return None


def extract_product(query: str) -> str:
    q = query.lower()
    for product in KNOWN_PRODUCTS:
        if product in q:
            return product

    match = re.search(r"price\s+of\s+(.+?)(?:[?.!]|$)", q)
    if match:
        return match.group(1).strip()

    match = re.search(r"track\s+(.+?)\s+price", q)
    if match:
        return match.group(1).strip()

    return re.sub(r"\b(price|cost|track|of|the)\b", "", q).strip(" ?.!")
