"""Linearizability checker, checked value encoding and a small MapReduce framework."""

__version__ = "0.1.0"