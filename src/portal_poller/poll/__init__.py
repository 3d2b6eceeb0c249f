"""Adaptive poll controller, its policy and the engine that drives it."""
