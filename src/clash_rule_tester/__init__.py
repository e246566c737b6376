"""Clash rule tester - evaluate Clash rule sets against a domain."""

__version__ = "0.1.0"
