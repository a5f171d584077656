"""Vendor and third-party service drivers."""
