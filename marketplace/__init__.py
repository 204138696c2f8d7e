"""Multi-tenant marketplace: tenant resolution, client caching, scoped reads."""

__version__ = "0.1.0"
