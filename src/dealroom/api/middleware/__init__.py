"""HTTP middleware: request logging."""
