"""simple-acme built-in plugins."""
