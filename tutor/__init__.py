"""Vocabulary-constrained German conversation practice."""
