"""
Reaper module.
Contains the lease reaper for recovering expired jobs.
"""

from notifyq.reaper.main import Reaper, run

__all__ = ["Reaper", "run"]
