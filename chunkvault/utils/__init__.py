"""Utility helpers for ChunkVault."""
