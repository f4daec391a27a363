"""Boot configuration of the A/B partition sets."""
