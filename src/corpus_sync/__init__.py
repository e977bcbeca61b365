"""Cache-aware synchronization of a curated document corpus into project trees."""

__version__ = "0.4.0"
