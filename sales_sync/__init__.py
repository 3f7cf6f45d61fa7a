"""Sales aggregation and synchronization pipeline."""
