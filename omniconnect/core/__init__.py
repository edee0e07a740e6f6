"""Core framework pieces: configuration, logging and the application factory."""
