"""Prompt text for image captioning."""

DESCRIBE_PROMPT = "Describe this image"
