"""Task lifecycle, asset store, model client and orchestration."""
