"""
Expand Service - Response Expansion for JSON APIs

A schema-driven middleware layer providing:
- Stripe-style `expand=` query parameters on any JSON endpoint
- Boot-time index of expandable fields from an OpenAPI document
- Authorization-preserving internal resolution of referenced resources
- Graceful degradation: expansion never fails the primary request
"""

__version__ = "0.1.0"
