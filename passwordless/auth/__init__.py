"""
Passwordless Authentication

This package implements sign-in without passwords: one-time email codes
and single-use magic links prove control of an address, a rate limiter
guards issuance and verification, and the session manager turns a successful
verification into a signed, fixed-lifetime session.

Layout:
- store: credential and attempt persistence with atomic consumption
- rate_limit: issuance ceilings, cooldowns and lockout
- codes / magic_link: issuers and verifiers
- session: session tokens, signup tickets and profile completion
- router / dependencies: the FastAPI surface
"""
