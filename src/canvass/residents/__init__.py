"""Residents and polygon membership."""
