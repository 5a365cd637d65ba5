"""Application layer: use cases, services, sources and caches."""
