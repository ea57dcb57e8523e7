"""Local SQLite storage for mods and cached translations."""
