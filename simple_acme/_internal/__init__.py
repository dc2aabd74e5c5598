"""simple-acme internal implementation details.

Nothing in this package is part of the public API.

"""
