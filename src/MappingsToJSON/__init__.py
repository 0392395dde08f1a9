"""MappingsToJSON: export obfuscation mapping artifacts as JSON documents."""
