"""Risk read-model builder for Morpho lending vaults."""

__version__ = "0.1.0"
