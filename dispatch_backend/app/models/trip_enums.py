"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    IN_PROGRESS = "IN_PROGRESS"  # Opened, vehicle on route with cargo
    FINISHED = "FINISHED"  # Reconciled and closed, terminal
