"""audit/ -- Security audit trail for admin authentication events.

Layer rule: audit/ imports only stdlib + third-party libraries and core/.
It does NOT import from api/ or auth/. auth/ and api/ import from audit/.
"""
