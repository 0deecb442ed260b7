"""Traffic Monitor: request logging and analysis."""
