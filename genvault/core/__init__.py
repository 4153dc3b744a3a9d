"""
Core sync engine.

`SyncManager` coordinates one run: listing, reconciliation, acquisition and
verification. The individual steps live in their own modules and depend only
on the `RemoteSession` capability interface.
"""
