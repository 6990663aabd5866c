"""auth/ -- Accounts, credentials, one-time codes, tokens and sessions for Storekeep.

Layer rule: auth/ imports stdlib, third-party libraries and core/.
It does NOT import from api/ or catalog/.
api/ imports from auth/, not the other way around.
"""
