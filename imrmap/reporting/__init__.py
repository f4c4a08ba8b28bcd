"""Reporting module - LaTeX tables and EPS figures."""
