"""mediashelf - media library indexing and cache-coherency engine."""

__version__ = "0.4.0"
