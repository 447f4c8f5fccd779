"""Sample form payload and reference Bundle fixture."""
