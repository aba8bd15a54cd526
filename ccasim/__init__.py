"""Simulator of CCA worlds, granule protection tables, world memory and realms."""

__version__ = "0.1.0"