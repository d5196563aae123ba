"""
popnode
-------

Installer, backup and restore utility for a PoP cache node running in Docker.
"""

__version__ = "1.0.0"
