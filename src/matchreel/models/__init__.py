"""Pydantic models for events, scene snapshots, moments and commentary."""
