"""HTTP control surface for the scrape session."""
