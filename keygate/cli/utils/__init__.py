"""Keygate CLI utilities."""
