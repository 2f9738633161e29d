"""aiohttp JSON API for parish_calendar."""
