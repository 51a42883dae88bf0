"""Live NSE screener: tick stream in, breakout alerts out."""
