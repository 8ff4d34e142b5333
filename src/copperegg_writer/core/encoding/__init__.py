"""Wire encoders for sink payloads."""
