"""Dialog response enrichment server for crypto price, sentiment and news questions."""
