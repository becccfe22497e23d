"""Vital-sign monitoring core.

Concurrent patient record store and the rule-based alert evaluation engine
built on top of it. Transport adapters and data generation live elsewhere.
"""
