"""Authentication and authorization.

Learn: Two bearer-token trust roots, one principal:
1. Local users → email/password → JWT access/refresh tokens
2. Supabase users → Supabase JWT → linked local user (cached lookup)

Both resolve to a Principal (user_id, company_id, email, role) used to
scope every query by company.
"""
