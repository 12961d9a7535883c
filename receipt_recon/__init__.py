"""Receipt reconciliation engine.

Reads photographed payment receipts through external OCR providers,
extracts the most likely paid total from the recognized text, and
reconciles it against the expected amount of a restaurant order.
"""

__version__ = "1.0.0"
