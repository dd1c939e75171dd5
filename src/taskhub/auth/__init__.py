"""Authentication and authorization.

Learn: Users authenticate with email/password and receive a pair of JWTs
(session-access + session-refresh). Invitation and password-reset links
carry their own token kinds, signed with their own secrets.

The bearer dependency resolves the access token to a "current user" and
the membership dependency gates team-owned writes.
"""
