"""Territory models, payloads, stores and location selection."""
