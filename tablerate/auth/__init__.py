"""
Session authentication.

Responsibilities:
- Keep a small directory of demo accounts with bcrypt password hashes.
- Issue and clear the signed session cookie on login and logout.
- Expose FastAPI dependencies that resolve the signed-in user and role.
"""
