"""Adapters binding the core to the sink's HTTP API and the bundled catalog."""
