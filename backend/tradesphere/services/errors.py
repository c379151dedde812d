"""Exception taxonomy for the pricing core."""


class PricingError(Exception):
    """Base class for every error raised by the pricing core."""


class ConfigUnavailableError(PricingError):
    """The configuration store is unreachable or returned an unusable record."""


class InvalidSelection(PricingError):
    """A selected option key is not present in the variable's option table.

    Raised by :meth:`Variable.require_option`; the engines recover from it
    by substituting the variable default and emitting ``selection.defaulted``.
    """

    def __init__(self, variable: str, option_key: object):
        self.variable = variable
        self.option_key = option_key
        super().__init__(f"Option '{option_key}' is not defined for variable '{variable}'")


class InvalidQuantityError(PricingError, ValueError):
    """Quantity must be strictly positive."""

    def __init__(self, quantity: object):
        self.quantity = quantity
        super().__init__(f"Quantity must be greater than zero; received {quantity!r}")


class BundledCalculationError(PricingError):
    """A bundled-service sub-calculation (e.g. excavation) failed."""


class SubscriptionError(PricingError):
    """The change-notification channel could not be established or dropped."""


class ConfigValidationError(PricingError, ValueError):
    """A variables_config payload failed structural validation."""

    def __init__(self, errors: list, warnings: list = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("; ".join(self.errors) or "Invalid variables_config")
