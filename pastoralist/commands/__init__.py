"""Commands module for pastoralist CLI."""
