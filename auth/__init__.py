"""auth/ -- Authentication and authorization package for AreaGate.

Token codec, credential verification, sessions, magic links and the
role/group policy engine.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/, web/, core/, or workspace/.
api/ and web/ import from auth/, not the other way around.
"""
