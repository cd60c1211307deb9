"""Request handlers grouped by audience."""
