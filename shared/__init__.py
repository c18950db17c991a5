"""
Shared utilities for the query cache layer.

This package aggregates common building blocks:

- config: Settings via pydantic-settings
- logging: Structured logging with query correlation
- metrics: Prometheus cache and query metrics
- errors: Canonical error types and responses
- retry: Retry policy and backoff calculation
- clock: Time source abstraction (system or virtual)
- base_service: FastAPI service scaffolding

Do not import from service packages into shared/.
"""
