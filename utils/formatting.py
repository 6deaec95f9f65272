"""
Formatting utilities for diagnostic messages.
"""

CURRENCY_SYMBOLS = {
    "USD": "$",
    "GBP": "£",
    "EUR": "€",
}


def format_currency(amount: float, currency: str = "USD") -> str:
    """
    Format an amount as whole-unit currency.

    Args:
        amount: The amount in whole units (fractions are rounded).
        currency: Currency code (default USD).

    Returns:
        Formatted currency string, e.g. "$425,000" or "-$1,200".
    """
    symbol = CURRENCY_SYMBOLS.get(currency, currency + " ")
    rounded = int(round(amount))
    sign = "-" if rounded < 0 else ""
    return f"{sign}{symbol}{abs(rounded):,}"


def format_percent(value: float, decimals: int = 1) -> str:
    """
    Format a number that is already in percent units.

    Args:
        value: The percentage value (2.5 means 2.5%).
        decimals: Number of decimal places.

    Returns:
        Formatted percentage string.
    """
    return f"{value:.{decimals}f}%"


def format_ppsf(value: float, currency: str = "USD") -> str:
    """Format a price per square foot, e.g. "$205/sqft"."""
    return f"{format_currency(value, currency)}/sqft"
