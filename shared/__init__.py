"""
Shared utilities for the token bridge.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and responses
- base_service: FastAPI application skeleton (health, metrics, errors)

Do not import from service packages into shared/.
"""
