"""Chat bridges that deliver inbound messages and carry agent replies back."""
