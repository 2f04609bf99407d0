"""Small shared helpers: logging setup and JSON serialisation."""
