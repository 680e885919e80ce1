"""
Availability scheduling and booking core for the dating platform.

Usage:
    from dateplanner.services import SchedulingOrchestrator
"""

__version__ = "0.1.0"
