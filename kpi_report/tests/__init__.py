"""Test suite for the KPI Report backend."""
