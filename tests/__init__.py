"""Unit tests for the laser preparation toolkit."""
