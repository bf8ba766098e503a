"""Test utilities: async helpers, validators and fixtures."""
