"""Factur-X HTTP API."""
