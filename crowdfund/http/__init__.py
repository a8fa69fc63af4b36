"""HTTP transport and request/response middleware."""
