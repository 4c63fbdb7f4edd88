"""Starlette middleware for the HTTP surface."""
