"""
Tool Marketplace.

Registration, semantic discovery, metered execution and analytics for
third-party HTTP tools.
"""

__version__ = "1.0.0"

from toolmarket.marketplace import Marketplace, OperationResult

__all__ = ["Marketplace", "OperationResult", "__version__"]
