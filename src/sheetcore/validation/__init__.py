"""Intent validation and policy enforcement."""
