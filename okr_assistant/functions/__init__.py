"""Domain functions invoked by intents and function calling."""
