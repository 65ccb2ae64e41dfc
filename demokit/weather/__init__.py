"""Weather bot: sample weather data, formatting, subscriptions and slash commands."""

__version__ = "0.1.0"