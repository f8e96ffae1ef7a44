"""
Accounts: signup, activation, login, persistent sessions and password reset.

Only digests of passwords and tokens are stored; see service.AccountLifecycle.
"""
