"""Models module - specification, lincombs and solvers."""
