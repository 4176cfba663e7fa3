"""Static design data: domain keyword catalogue and styling vocabulary."""
