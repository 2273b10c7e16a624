"""auth/ -- Credential store, session lifecycle, and the authorization gate.

Layer rule: auth/ imports only core/, stdlib, and third-party libraries.
It does NOT import from api/ or scanner/.
api/ imports from auth/, not the other way around.
"""
