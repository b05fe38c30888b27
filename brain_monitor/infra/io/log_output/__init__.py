"""Console output helpers and the per-run debug log."""
