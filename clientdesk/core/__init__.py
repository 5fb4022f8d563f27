"""Configuration, logging, errors and domain models."""
