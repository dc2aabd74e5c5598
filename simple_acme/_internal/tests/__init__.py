"""simple-acme tests."""
