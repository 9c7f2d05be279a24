"""
Domain package - Core business logic with no external dependencies.

This package contains pure Python models, tax classification and the
invoice total computation, plus the item and validation rules that keep
an invoice consistent.
"""
