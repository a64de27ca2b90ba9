"""auth/ -- Authentication and authorization package for FieldPass.

Layer rule: auth/ imports only core/, stdlib, and third-party libraries.
It does NOT import from api/, grants/, directory/, or client/.
api/ imports from auth/, not the other way around.
"""
