"""Price oracle clients."""
from .uspd import UspdPriceFeed, parse_quote, to_numeric

__all__ = ["UspdPriceFeed", "parse_quote", "to_numeric"]
