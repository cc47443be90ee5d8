"""Application configuration (environment-driven, validated at startup)."""
