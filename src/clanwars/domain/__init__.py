"""Pure rules of the clan war engine (no database access)."""
