"""HTTP API for the payroll reconciler."""
