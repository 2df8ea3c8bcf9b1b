"""Analytics services for ccusage-monitor."""
