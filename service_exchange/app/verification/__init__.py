"""
Token verification package.

Confirms with the provider that a presented token is active and extracts
its subject. A single attempt per exchange; no retries.
"""
