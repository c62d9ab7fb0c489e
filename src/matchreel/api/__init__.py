"""HTTP query surface for replay viewers."""
