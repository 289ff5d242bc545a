"""HTTP middleware: authentication and CORS."""
