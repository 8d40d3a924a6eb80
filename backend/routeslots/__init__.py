"""Route and zone slot allocation service."""
