"""Polygon geometry helpers."""
