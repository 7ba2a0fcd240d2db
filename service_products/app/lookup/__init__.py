"""
Lookup package for Products Service.

Holds the read-through coordinator that sits between the HTTP handler
and the cache/store adapters.
"""
