"""
Synthex Client Library
======================

Python client for the Synthex AI creative platform: authentication and
session persistence, generation-guarded resource queries, paginated
collections, debounced search, and optimistic favorites.

The entry point is `synthex.client.SynthexClient`.
"""

__version__ = "1.0.0"
