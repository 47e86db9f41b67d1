"""HTTP adapter: FastAPI routes over CredentialAuthority."""
