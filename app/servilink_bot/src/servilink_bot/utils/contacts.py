from urllib.parse import quote


def normalize_phone(phone: str) -> str | None:
    """Normalize an Argentine phone number to wa.me digits.

    - Keeps only digits
    - Drops a leading 0 (trunk prefix)
    - 10 digits (area code + number) -> prefix with 549
    - Accepts 11-15 digits after normalization
    """
    raw = (phone or "").strip()
    if not raw:
        return None
    digits = "".join(ch for ch in raw if ch.isdigit())
    if not digits:
        return None
    if digits.startswith("0"):
        digits = digits[1:]
    if len(digits) == 10:
        digits = "549" + digits
    if len(digits) < 11 or len(digits) > 15:
        return None
    return digits


def whatsapp_link(phone: str, text: str | None = None) -> str:
    digits = normalize_phone(phone)
    if digits is None:
        raise ValueError(f"invalid phone number: {phone!r}")
    url = f"https://wa.me/{digits}"
    if text:
        url += f"?text={quote(text)}"
    return url
