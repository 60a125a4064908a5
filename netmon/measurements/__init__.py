"""Measurement data model, probers and the round executor."""
