"""Catalog provisioning and teardown for WooCommerce-compatible stores."""

__version__ = "0.1.0"
