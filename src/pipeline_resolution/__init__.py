"""Asynchronous resolution of remote pipeline artifacts through pluggable resolvers."""

__version__ = "0.1.0"
