"""Utility helpers for eHealthWave."""
