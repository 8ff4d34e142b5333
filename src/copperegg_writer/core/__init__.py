"""Pure domain logic: models, routing table, batching and encoding."""
