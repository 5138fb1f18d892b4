"""
Shared utilities for the Ability Layer.

This package aggregates common building blocks consumed by every component:

- config: Settings via pydantic-settings
- logging: Structured logging with request/actor correlation
- metrics: Prometheus metrics for checks and filter compilation
- errors: Canonical error types and responses
- test_helpers: Models and factories shared by the test suites

Do not import from service_abilities into shared/.
"""
