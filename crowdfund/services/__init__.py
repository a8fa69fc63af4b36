"""
Thin wrappers over the project/donation endpoints.

They share the session's ApiClient, so the token is attached and a 401 logs out.
"""
