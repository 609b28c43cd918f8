"""Payment provider integration (Stripe hosted checkout)."""
