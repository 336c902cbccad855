"""
Collection Desk

Collection lifecycle core for a distribution back office: credit and cheque
collections, verification, partial payments, cheque recording and
credit-to-cheque conversion, with Decimal money handling throughout.
"""

__version__ = "1.0.0"
