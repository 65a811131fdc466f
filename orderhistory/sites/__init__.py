"""Per-site URL knowledge for Amazon storefronts."""
