"""
auth/domains.py -- Email domain allow-list.

ALLOWED_DOMAINS lets an operator pre-approve whole organisations: anyone who
signs in with Google using an address at one of these domains gets an editor
account without an admin inviting them first.

Matching rules:
  - The configured string is split on whitespace and commas; blanks are dropped.
  - The email domain is everything after the last "@".
  - Comparison is case-insensitive and exact. "example.com" does NOT admit
    "mail.example.com" -- list subdomains explicitly.
  - An empty list admits nobody.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import re

_SEPARATORS = re.compile(r"[\s,]+")


def parse_allowed_domains(value: str | None) -> list[str]:
    """Return the normalised (lowercase, deduplicated, ordered) domain list."""
    if not value:
        return []
    seen: set[str] = set()
    domains: list[str] = []
    for raw in _SEPARATORS.split(value):
        domain = raw.strip().lstrip("@").lower()
        if domain and domain not in seen:
            seen.add(domain)
            domains.append(domain)
    return domains


def email_domain(email: str | None) -> str | None:
    if not email or "@" not in email:
        return None
    domain = email.rsplit("@", 1)[1].strip().lower()
    return domain or None


def is_allowed(allowed_domains: str | None, email: str | None) -> bool:
    """Return True if email's domain appears in the allow-list."""
    domain = email_domain(email)
    if domain is None:
        return False
    return domain in parse_allowed_domains(allowed_domains)
