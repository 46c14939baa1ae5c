"""
CertReload API Package.

FastAPI admin API for the reloadable TLS endpoint.
Requires Python 3.11+.
"""

# Import app lazily to avoid circular imports
# Use: from api.main import app
