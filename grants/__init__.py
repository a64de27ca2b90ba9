"""grants/ -- The access grant protocol: store, issuer, scan validator, code verifier.

Layer rule: grants/ imports from core/ and directory/ only.
It does NOT import from api/, auth/, or client/.
api/ and client/ import from grants/, not the other way around.
"""
