"""Configuration helpers for the Lagam production hub."""

# This package collects runtime configuration that can be customised without
# touching the application logic.  Individual modules provide structured
# accessors for specific domains (for example the record store schema).
