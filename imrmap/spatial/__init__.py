"""Spatial module - neighborhood graph construction."""
