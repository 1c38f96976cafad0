"""architecta — negotiate implementation plans with an agent, then review against them."""

__version__ = "0.1.0"
