"""
Core business logic components.

This package contains the query pipeline components:
- API key authentication
- Sliding-window rate limiting
- Query validation
- Query execution
- Query log and retention
- Metrics collection
"""
