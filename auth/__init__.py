"""auth/ -- Credential hashing, access tokens and access control for the account service.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or accounts/.
api/ and accounts/ import from auth/, not the other way around.
"""
