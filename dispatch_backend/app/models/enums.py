"""
User roles enumeration.

Defines the role types for the dispatch system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Full access, may also supervise teams
        SUPERVISOR: Supervises one or more driver teams
        OPERATOR: Opens and closes trips at the depot
    """
    ADMIN = "ADMIN"
    SUPERVISOR = "SUPERVISOR"
    OPERATOR = "OPERATOR"
