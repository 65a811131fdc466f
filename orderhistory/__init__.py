"""
Order and transaction history scraper.
"""

__version__ = "1.0.0"
