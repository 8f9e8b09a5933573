"""Configuration, error taxonomy and retry primitives shared by the gateway."""
