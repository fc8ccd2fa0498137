"""Indie game scout - discovery funnel for scout missions."""
