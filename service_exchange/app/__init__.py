"""
Token exchange service package.

Exposes the FastAPI application that turns an external identity provider's
access token into an internal signed credential:

- app.main: Application entrypoint that wires clients, pipeline and routes.
- app.provider: HTTP client for the external identity provider.
- app.verification: Token introspection and classification.
- app.identity: Profile/detail lookups and the identity merge rule.
- app.backend: Internal credential backend contract and Firebase adapter.
- app.provisioning: Upsert of the internal user record.
- app.credentials: Credential minting.
- app.exchange: The request-scoped orchestration of all of the above.

Design notes:
- Module import must not perform network calls. Clients are built when the
  service is constructed and closed on shutdown.
- The service keeps no state between requests.
"""
