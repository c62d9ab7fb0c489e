"""Pure replay computation: detection, presentation, redaction, visibility."""
