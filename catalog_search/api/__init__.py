"""Public request and response models."""
