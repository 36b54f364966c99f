"""AutoSpread core source package.

This package contains the components of the listing valuation pipeline:
- browser: Playwright-based page fetching
- extractor: crawl traversal base (key assignment, listing fan-out)
- scraper: marketplace crawler wiring extraction events to the store
- store: write-once correlation store for listing records
- valuation: registry and valuation API client
- parsing: plate and price text extractors
- pricing: price differential computation
- validator: API payload schemas and coverage monitoring
- reporter: CSV, Excel and dashboard exports
- logger: structured logging configuration
- exceptions: custom exception hierarchy
"""

__version__ = "1.0.0"
