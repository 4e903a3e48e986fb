"""Static retailer configuration (RETAILERS_CONFIG) and credential lookup."""
from .registry import RetailerConfig, RetailerRegistry, resolve_credentials

__all__ = ["RetailerConfig", "RetailerRegistry", "resolve_credentials"]
