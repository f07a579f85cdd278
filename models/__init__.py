"""
Provider client package for the landmark pipeline.

This module exposes a singleton accessor for:
- Gemini (`get_client`), used for vision, grounded search and speech
"""
