"""Domain layer — properties, validators, models, and serialization.

This layer depends only on stdlib and pydantic.
It must never import from orm or config.
"""
