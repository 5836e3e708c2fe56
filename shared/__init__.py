"""
Shared utilities for the token service.

This package aggregates common building blocks consumed by the service
packages:

- config: Service configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- test_helpers: In-memory store doubles and test data factories

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
