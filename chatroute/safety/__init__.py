"""Safety checks around the model call: injection gate, leak scan, size budget."""
