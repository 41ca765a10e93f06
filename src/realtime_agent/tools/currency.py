"""Currency conversion over a static rate table."""

from typing import Tuple

from ..tool_registry import CurrencyResult
from ..utils import first_number, fold_text

DEFAULT_AMOUNT = 100.0

RATES = {
    "USD-EUR": 0.918,
    "EUR-USD": 1.089,
    "USD-MXN": 17.28,
    "MXN-USD": 0.058,
    "EUR-MXN": 18.82,
    "MXN-EUR": 0.053,
}


def extract_currency_pair(message: str) -> Tuple[str, str]:
    """Infer (from, to) from keywords, defaulting to USD -> EUR."""
    text = fold_text(message)

    if "bitcoin" in text or "btc" in text:
        return "USD", "EUR"
    if "euro" in text and "dolar" in text:
        if text.index("euro") < text.index("dolar"):
            return "EUR", "USD"
        return "USD", "EUR"
    if "peso" in text:
        return "USD", "MXN"
    return "USD", "EUR"


def convert(from_currency: str, to_currency: str, amount: float) -> CurrencyResult:
    key = f"{from_currency.upper()}-{to_currency.upper()}"
    known = key in RATES
    return CurrencyResult(
        from_currency, to_currency, amount, RATES.get(key, 1.0), known_rate=known
    )


class CurrencyTool:
    def currency(self, message: str) -> CurrencyResult:
        """Convert the first amount in the message between the currencies it mentions."""
        amount = first_number(message)
        if amount is None:
            amount = DEFAULT_AMOUNT
        from_currency, to_currency = extract_currency_pair(message)
        return convert(from_currency, to_currency, amount)
