"""Settlement layer contract deployment."""
