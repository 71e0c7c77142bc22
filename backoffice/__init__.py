"""Multi-company warranty and repair-history back office."""
