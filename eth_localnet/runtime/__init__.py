"""Chain runtime services and helper contracts."""
