"""Business-logic services composed from the provider interfaces."""
