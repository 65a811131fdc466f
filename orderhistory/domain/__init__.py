"""Domain records assembled from scraped pages."""
