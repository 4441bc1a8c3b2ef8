"""PropertyFinder.ae listing crawler."""
