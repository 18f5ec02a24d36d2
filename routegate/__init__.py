"""Routegate: quota-rationed gateway for geospatial routing providers."""
