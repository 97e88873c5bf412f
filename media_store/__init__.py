"""Media storage with reference-counted deletion on an object store."""

__version__ = "1.0.0"
