"""
Exceptions raised by the pricing engine.

Expected data shortfalls are reported through tagged stage outcomes, not
exceptions; these cover the model training path.
"""


class PricingError(Exception):
    """Base class for pricing engine errors."""


class ModelTrainingError(PricingError):
    """The ridge system was singular or produced non-finite coefficients."""


class InsufficientTrainingDataError(ModelTrainingError):
    """Fewer usable sold records than the model needs."""
