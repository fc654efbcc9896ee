"""redeploy: manifest update, commit, compose redeploy and health gate."""

__version__ = "0.1.0"
