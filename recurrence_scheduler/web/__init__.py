"""HTTP layer: routers and handler implementations."""
