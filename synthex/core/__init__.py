"""
Core Client Logic
=================

This package contains the foundational logic of the Synthex client: the
HTTP API client and its error taxonomy, the data model, durable local
storage, the query engine with its pagination and search handles, session
management, and the optimistic favorites stores.
"""
