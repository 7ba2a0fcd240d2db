"""
Shared utilities for the Products Lookup Service.

This package aggregates common building blocks consumed by services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types
- base_service: FastAPI application scaffolding with lifespan, health and metrics
- test_helpers: In-memory backends and factories for tests

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
