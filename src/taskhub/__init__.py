"""TaskHub — project/task management backend.

This package holds the identity core of the platform: user registration,
session tokens, team invitations, password resets, and the team
membership check that gates task and project writes.
"""

__version__ = "0.1.0"
