"""Command-line entry points: cache warmup and cache monitoring."""
