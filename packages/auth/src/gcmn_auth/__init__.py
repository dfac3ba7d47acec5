"""Client-side authentication for the GCMN Library portal.

The identity provider (Supabase Auth) owns credentials and token validity.
This package holds the client half of that contract: the provider client,
the Session Store, the Profile Resolver and the capability gate.
"""
