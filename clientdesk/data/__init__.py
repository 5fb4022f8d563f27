"""Document store port, store backends, record mapping and subscriptions."""
