"""Tests for simple_acme._internal.plugins."""
