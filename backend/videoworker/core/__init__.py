"""Core module for configuration and infrastructure.

- config: Settings loaded from the environment
- database: Async SQLAlchemy engine and session factory
- celery_app: Celery application (broker, acks, prefetch)
- logging: Structured logging with correlation IDs
- metrics: Prometheus metrics for jobs and media operations
- storage: Upload/processed storage roots and path resolution
"""
