"""
Identity provider client package.

Wraps the provider's introspection, userinfo and user-detail endpoints.
Errors are raised as transport / HTTP-status / payload failures and are
classified by the pipeline stage that made the call.
"""
