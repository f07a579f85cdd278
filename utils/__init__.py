"""Media helpers: image encoding and narration audio decoding."""
