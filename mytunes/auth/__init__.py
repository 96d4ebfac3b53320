"""
Authentication helpers for the MyTunes API.

- Local username/password accounts (bcrypt).
- Cookie-based signed session (HttpOnly) for the same-origin UI.
- The session carries only the principal: id, role, username.
"""
