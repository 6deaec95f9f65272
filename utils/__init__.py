"""
Utility modules for the pricing engine.
"""

from .formatting import format_currency, format_percent, format_ppsf
from .config import Config

__all__ = ["format_currency", "format_percent", "format_ppsf", "Config"]
