"""
Internal credential backend package.

``base`` defines the contract (update/create user, mint credential) and its
error types; ``firebase`` implements it with the Firebase Admin SDK.
"""
