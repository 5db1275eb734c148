"""
Authentication helpers for the Portal web app.

Design goals:
- Identity provider owns sign-in, token exchange and session validity.
- Server-enforced redirects for signed-in / signed-out visitors.
- Cookie-based session (HttpOnly) for same-origin pages.
"""
