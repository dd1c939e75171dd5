"""Service layer — identity, teams and membership logic."""
