"""BeautifulSoup parsers for Amazon order history pages."""
