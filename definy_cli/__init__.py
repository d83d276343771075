"""Command-line interface for the Definy version store."""
