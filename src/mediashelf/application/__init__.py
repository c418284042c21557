"""Application layer: scan orchestration and cache coherency services."""
