"""Clash rule tester middleware modules."""

from clash_rule_tester.middleware.logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
