"""Tests for eHealthWave."""
