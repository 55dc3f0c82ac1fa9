"""Deck storage and card generation."""
