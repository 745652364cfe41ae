"""Scene files, PNG and WAV loading, a software audio mixer and the game rules of a rat-on-a-brunch-table stealth game."""

__version__ = "0.1.0"