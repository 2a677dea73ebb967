"""Belt account abstraction indexer"""

__version__ = "0.1.0"
