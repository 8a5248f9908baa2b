"""CaseVault Backend - Pydantic request/response schemas."""
