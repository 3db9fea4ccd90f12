"""HTTP transport for the generation backend."""
