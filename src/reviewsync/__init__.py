"""Review platform synchronization service."""
