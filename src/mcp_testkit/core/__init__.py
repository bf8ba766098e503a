"""Core components: errors, types, configuration and logging."""
