"""Persistence layer.

The key-value backends know nothing about the broker schema: they store one
opaque string per key.  :mod:`pyosb.persistence.sync` turns state snapshots
into fire-and-forget saves against one of them.
"""
