"""Configuration, logging, error rendering, extensions and the execution context."""
