"""DUCO device fleet emulator.

Keeps a roster of emulated mining devices connected to a pool, each reporting
results at its configured hash rate.
"""

__version__ = "0.1.0"
