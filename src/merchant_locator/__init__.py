"""Merchant discovery and delivery pricing service."""
