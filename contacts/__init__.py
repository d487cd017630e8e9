"""contacts/ -- Emergency contacts owned by SafeHaven users.

Layer rule: contacts/ does NOT import from api/ or auth/. Ownership is
expressed as a plain user_id; api/ resolves the caller and passes it in.
"""
