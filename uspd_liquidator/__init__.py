"""USPD stabilizer position liquidator."""

__version__ = "0.1.0"
