"""
genvault: resumable archival of a remote track catalog.
"""

__version__ = "0.3.0"
