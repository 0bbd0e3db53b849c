"""trailtrack Infrastructure - position sources and persistence."""
