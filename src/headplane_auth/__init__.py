"""Headplane Auth: OIDC login service for the Headplane admin UI"""

__version__ = "1.0.0"
