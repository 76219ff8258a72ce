"""Area-scoped console resources: view groups, audit trail, preferences, custom maps."""
