"""
API package - HTTP routes, request/response schemas and dependencies.
"""
