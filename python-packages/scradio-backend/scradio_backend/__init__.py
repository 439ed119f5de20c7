"""scradio-backend: authority service for shared playback sessions."""
