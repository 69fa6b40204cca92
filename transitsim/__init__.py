"""TRANSITSIM: simulated bus traffic moving along real road routes."""

__version__ = "0.1.0"
