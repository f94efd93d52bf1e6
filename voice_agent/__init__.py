"""
Voice agent request guard.

Rate limiting, cost budgeting, response caching and session history for
a website voice assistant, backed by a TTL key-value store.
"""
