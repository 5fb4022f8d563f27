"""Entity services, dashboard aggregates and notifications."""
