"""
Storage Package.

Every evaluated signal is written to the database for audit.

Modules:
- database: async engine and session factory
- models/: declarative base and mixins
- repositories/: base repository and exceptions
"""
