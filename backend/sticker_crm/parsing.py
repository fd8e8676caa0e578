import re

from .schemas import ParsedDescription

CLIENT_RE = re.compile(r"@(\S+)")
PHONE_RE = re.compile(r"(?:\+7|8)[\s\-]?\(?(\d{3})\)?[\s\-]?(\d{3})[\s\-]?(\d{2})[\s\-]?(\d{2})")
PRICE_RE = re.compile(r"(\d+(?:\s?\d+)*)\s*[₽Рр]")


def parse_description(text: str) -> ParsedDescription:
    """Prefill order fields from a pasted chat message.

    First non-blank line -> title, ``@handle`` -> client name,
    +7/8 phone -> client phone, ``1 500 ₽`` -> price.
    """
    out = ParsedDescription()
    if not text:
        return out

    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    if lines:
        out.title = lines[0]

    m = CLIENT_RE.search(text)
    if m:
        out.client_name = m.group(1).strip()

    m = PHONE_RE.search(text)
    if m:
        out.client_phone = m.group(0).strip()

    m = PRICE_RE.search(text)
    if m:
        out.price = float(re.sub(r"\s", "", m.group(1)))

    return out
