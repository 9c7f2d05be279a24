"""
Infrastructure package - Persistence behind the repository interfaces.

Includes the SQL database handle and tables, SQL repositories and the
in-memory repositories used for development and tests.
"""
