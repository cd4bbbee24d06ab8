"""External data providers for the collectors."""
