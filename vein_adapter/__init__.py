"""SQLite cache index, gem-version quarantine and atomic file storage for a RubyGems mirror."""

__version__ = "0.3.0"