"""HTTP endpoints that complement the auth core."""
