"""
Browser automation for the interactive download strategy.
"""

from .interactive import PlaywrightDriver

__all__ = ["PlaywrightDriver"]
