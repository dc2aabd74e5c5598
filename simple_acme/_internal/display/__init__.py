"""simple-acme display utilities."""
