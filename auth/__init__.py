"""auth/ -- Admin authentication package: credentials, brute-force limiter,
sessions, and the login orchestrator.

Layer rule: auth/ imports stdlib, third-party libraries, core/, and audit/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
