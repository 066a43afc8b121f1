#!/usr/bin/env python3
"""
Mixlist HTTP Server Runner
"""

from app.crosscutting.config import load_env_file, load_settings
from app.crosscutting.logging import setup_logging
from app.interfaces.http import HTTPServer


def main():
    """Run the HTTP server."""
    load_env_file()
    settings = load_settings()
    setup_logging(settings.log_level)
    server = HTTPServer(
        host='localhost',
        port=3000,
        debug=True,
        settings=settings
    )
    server.run()


if __name__ == '__main__':
    main()
