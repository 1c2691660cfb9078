"""Test suite for the weather station dashboard."""
