"""Cache-then-query lookups: similar ads and per-user recommendations."""
