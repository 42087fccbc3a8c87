"""Broker Operator — keeps broker namespaces' dependent CRDs and globalnet config converged."""

__version__ = "0.1.0"
