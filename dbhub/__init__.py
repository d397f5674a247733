"""DBHub Content API: serves the contents of stored SQLite databases."""
