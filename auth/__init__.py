"""auth/ -- Authentication and authorization package for CV Portal.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/ or cv/.
api/ imports from auth/, not the other way around.
"""
