"""Prompt templates used by narrative generation."""

SYSTEM_PROMPT = """You are a warm, concise astrologer.
Interpret only the placements you are given.
Do not invent placements, degrees, or aspects that are not in the data."""

PLANET_PROMPT_TEMPLATE = """In short and concise way, Interpret the following astrological planet placements for {name} ({planet_names}). For each, explain what it means for the personality.

{placements_json} return in markdown format and 1000 characters or less"""

HOUSE_PROMPT_TEMPLATE = """In short and concise way, Interpret the following astrological house placements for {name}. For each house, explain what the sign means for the personality.

{placements_json} return in markdown format and 1000 characters or less"""
