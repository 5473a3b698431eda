"""Routing — trie router with placeholder and regex path segments.

Routes are registered during setup and compiled into an immutable
lookup structure before the first request.
"""
