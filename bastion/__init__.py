"""Bastion: adaptive request-time security decision engine."""

__version__ = "0.1.0"
