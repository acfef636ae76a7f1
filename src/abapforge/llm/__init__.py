"""LLM provider abstraction: base class, concrete providers and factory."""
