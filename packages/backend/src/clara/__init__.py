"""Clara Confirms — multi-tenant backend.

Authentication (local + Supabase JWTs), company-scoped user management,
and the per-company ServiceTrade integration.
"""

__version__ = "0.1.0"
