"""Downstream services consuming orchestration results."""
