"""Social Tracker Worker."""
