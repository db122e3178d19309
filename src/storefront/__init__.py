"""Local cart and checkout engine for a REST storefront API."""

__version__ = "0.1.0"
