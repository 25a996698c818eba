"""Cross-tenant document model migration between service instances."""

__version__ = "0.1.0"
