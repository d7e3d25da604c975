"""
Package version.

Kept in a standalone module so build tooling and ``moltlog.__version__``
read the same value.
"""

__version__ = "0.1.0"
