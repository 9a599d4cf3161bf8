import math
import re

_CURRENCY_NOISE = re.compile(r"[R$\s]")


def format_brl(reais: float) -> str:
    """Format reais as BRL string: 2850.0 -> 'R$ 2.850,00'"""
    formatted = f"{reais:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"R$ {formatted}"


def _normalize_decimal(text: str) -> str:
    has_comma = "," in text
    has_dot = "." in text
    if has_comma and has_dot:
        if text.rfind(",") > text.rfind("."):
            # pt-BR: '.' thousands, ',' decimal
            return text.replace(".", "").replace(",", ".")
        # en-US: ',' thousands, '.' decimal
        return text.replace(",", "")
    if has_comma:
        return text.replace(",", ".")
    return text


def parse_brl(text: str) -> float | None:
    """Parse a BRL amount typed by a user. Returns None on invalid input.

    Accepts formats like '2850', '2850.00', '2.850,00', '2850,50', 'R$ 1.234,56'.
    """
    text = _CURRENCY_NOISE.sub("", text or "")
    if not text:
        return None
    try:
        value = float(_normalize_decimal(text))
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_money(value: object) -> float:
    """Parse a monetary value coming from an external store; unparseable values become 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    parsed = parse_brl(str(value))
    return parsed if parsed is not None else 0.0
