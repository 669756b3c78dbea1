"""Domain modules: players, ranking and the admin-facing gateway."""
