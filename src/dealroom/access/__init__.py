"""Access control -- roles, capabilities, the route gate and document tiers."""
