"""Domain models, enums, configuration and shared interfaces."""
