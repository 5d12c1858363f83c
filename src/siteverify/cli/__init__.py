"""siteverify command-line interface."""
