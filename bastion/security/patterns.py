"""
Heuristic pattern lists for submission and login page screening.

The lists are data: extend them without touching the validator. Matching
is case-insensitive substring search.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from urllib.parse import unquote_plus, urlencode

MIN_USER_AGENT_LENGTH = 10

OBSOLETE_CLIENT_PATTERNS = (
    "MSIE 6.0",
    "MSIE 7.0",
    "MSIE 8.0",
    "MSIE 9.0",
    "Mozilla/4.0",
    "Mozilla/3.0",
    "Mozilla/2.0",
    "Windows NT 5.1",
    "Windows NT 5.0",
    "Windows 98",
    "360SE",
    "QQBrowser",
    "Baidu",
    "SogouWeb",
    "compatible; MSIE",
)

# Scanner and scripted-client signatures screened on the login page.
BOT_USER_AGENT_PATTERNS = (
    "bot",
    "crawler",
    "spider",
    "scraper",
    "scan",
    "probe",
    "wget",
    "curl",
    "python",
    "php",
    "perl",
    "java",
    "masscan",
    "nmap",
    "nikto",
    "sqlmap",
    "gobuster",
    "dirb",
    "dirbuster",
    "wpscan",
    "nuclei",
    "httpx",
)

BROWSER_HEADERS = ("accept", "accept-language", "accept-encoding")

# Login page actions that legitimate users reach without a browser session.
LOGIN_BYPASS_ACTIONS = frozenset({
    "checkemail",
    "confirm_admin_email",
    "confirmaction",
    "expired",
    "invalidkey",
    "lostpassword",
    "newpwd",
    "postpass",
    "register",
    "resetpass",
    "retrievepassword",
    "rp",
    "logout",
})

SPAM_PHRASES = (
    # pharmaceutical
    "cheap viagra",
    "buy viagra",
    "cialis online",
    "pharmacy online",
    # gambling
    "casino winner",
    "you won $",
    "jackpot winner",
    "lottery winner",
    # finance
    "easy money",
    "quick profit",
    "get rich quick",
    "make money fast",
    "guaranteed profit",
    "risk-free investment",
    # promotional
    "click here now",
    "act now!",
    "limited time offer",
    "special discount",
    "100% guaranteed",
    "no risk involved",
    "make $",
    "earn $",
    "win $",
    "cash prize",
)

INJECTION_PATTERNS = (
    "PG_SLEEP",
    "SLEEP(",
    "WAITFOR DELAY",
    "UNION SELECT",
    "DROP TABLE",
    "DELETE FROM",
    "INSERT INTO",
    "UPDATE SET",
    "CREATE TABLE",
    "ALTER TABLE",
    "EXEC(",
    "EXECUTE(",
    "OR 1=1",
    "AND 1=1",
    "OR 128=128",
    "CONCAT(",
    "CHAR(",
    "ASCII(",
    "BENCHMARK(",
    "LOAD_FILE(",
    "INTO OUTFILE",
    "xp_cmdshell",
    "sp_executesql",
    "'; DROP",
    "' OR '",
    '" OR "',
    "--",
    "/*",
    "*/",
)

# Fields never screened for spam: addresses and our own control fields.
SPAM_EXEMPT_FIELDS = frozenset({"email", "your-email"})

MIN_SPAM_TEXT_LENGTH = 5
CAPS_MIN_LENGTH = 50
CAPS_RATIO = 0.7


def _find(haystack: str, patterns: Iterable[str]) -> str | None:
    lowered = haystack.lower()
    for pattern in patterns:
        if pattern.lower() in lowered:
            return pattern
    return None


def is_obsolete_client(user_agent: str | None) -> bool:
    """Empty, very short or legacy client signatures."""
    ua = (user_agent or "").strip()
    if len(ua) < MIN_USER_AGENT_LENGTH:
        return True
    return _find(ua, OBSOLETE_CLIENT_PATTERNS) is not None


def find_bot_signature(user_agent: str | None) -> str | None:
    return _find(user_agent or "", BOT_USER_AGENT_PATTERNS)


def lacks_browser_headers(headers: Mapping[str, str]) -> bool:
    """True when none of the Accept headers every browser sends is present."""
    present = {name.lower() for name in headers}
    return not any(name in present for name in BROWSER_HEADERS)


def spam_text(field_values: Mapping[str, object], exempt: Iterable[str] = ()) -> str:
    """Join the screenable field values into one string."""
    skip = SPAM_EXEMPT_FIELDS | set(exempt)
    return " ".join(str(v) for k, v in field_values.items() if k not in skip and v is not None)


def find_spam_phrase(text: str) -> str | None:
    if len(text.strip()) < MIN_SPAM_TEXT_LENGTH:
        return None
    return _find(text, SPAM_PHRASES)


def has_excessive_caps(text: str) -> bool:
    """More than 70% capital letters in a message longer than 50 characters."""
    if len(text) <= CAPS_MIN_LENGTH:
        return False
    upper = sum(1 for ch in text if "A" <= ch <= "Z")
    return upper / len(text) > CAPS_RATIO


def request_data(field_values: Mapping[str, object], query_string: str = "") -> str:
    """URL-decoded query string and form body, as screened for injection."""
    body = urlencode([(k, "" if v is None else str(v)) for k, v in field_values.items()])
    return unquote_plus(f"{query_string}&{body}")


def find_injection_pattern(data: str) -> str | None:
    return _find(data, INJECTION_PATTERNS)
