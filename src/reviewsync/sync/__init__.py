"""Review sync core: connections, reconciliation, stats and orchestration."""
