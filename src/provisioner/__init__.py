"""Directory provisioning for single sign-on logins.

Reconciles identities asserted during login with accounts in a remote
directory API, holding the login back while remote changes propagate.
"""

__version__ = "0.1.0"
