"""
Rhombick invoicing backend.

Customer records and GST invoices served over a JSON REST API.
"""

__version__ = "0.3.0"
