"""
schemas/ — Pydantic models for external payloads and the HTTP API.
"""
