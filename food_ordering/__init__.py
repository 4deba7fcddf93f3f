"""
                Food Ordering Backend

REST API for browsing restaurants, placing orders, tracking their
status and confirming bank-transfer payments.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
