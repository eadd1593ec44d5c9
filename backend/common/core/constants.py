from enum import Enum


class Environment(str, Enum):
    """Environment profiles."""

    LOCAL = "local"
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


# Monetary values are kept as Decimal and rounded to this precision when
# they leave a service.
MONEY_DECIMAL_PLACES = 2
