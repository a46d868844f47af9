"""Section Scraper: fetch a page and split it into titled text sections."""
