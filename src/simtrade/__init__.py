"""Point-in-time portfolio valuation, ranking and backfill engine for a stock-trading simulation."""
