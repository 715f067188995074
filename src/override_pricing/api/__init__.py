"""HTTP adapter over the override pricing core."""
