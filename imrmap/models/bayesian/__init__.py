"""Bayesian solvers (Stan via CmdStanPy)."""
